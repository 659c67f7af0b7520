"""Share links and folder locks.

A share grant lives on the file or folder row itself: a random token, an
optional expiry (epoch ms) and an optional bcrypt-hashed password. Expiry
is checked lazily on lookup; nothing sweeps old tokens.

A lock is a bcrypt-hashed password on a folder. It blocks deletion of the
folder and its subtree and hides that subtree from search.
"""

import logging
from typing import List, Optional, Union

from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from ..core.token_factory import generate_share_token, now_ms
from ..exceptions import ValidationError
from ..models.file import StoredFile
from ..models.folder import Folder
from ..repositories.file_repository import FileRepository
from ..repositories.folder_repository import FolderRepository
from . import tree_walker

logger = logging.getLogger(__name__)

HOUR_MS = 3600 * 1000
DAY_MS = 24 * HOUR_MS
EXPIRY_PRESETS = {"1h": HOUR_MS, "24h": DAY_MS, "7d": 7 * DAY_MS}
ITEM_TYPES = ("file", "folder")

Shareable = Union[StoredFile, Folder]


def compute_share_expiry(expires_in: str, now: int, custom_expires_at: Optional[int] = None) -> Optional[int]:
    """Map a TTL choice to an absolute epoch-ms expiry.

    "0" never expires. "custom" uses *custom_expires_at*. Anything
    unrecognised (or "custom" without a timestamp) falls back to 24h.
    """
    if expires_in == "0":
        return None
    if expires_in == "custom" and custom_expires_at:
        return int(custom_expires_at)
    return now + EXPIRY_PRESETS.get(expires_in, DAY_MS)


def is_share_live(item: Optional[Shareable], now: Optional[int] = None) -> bool:
    if item is None or not item.share_token:
        return False
    if item.share_expires_at and (now or now_ms()) > item.share_expires_at:
        return False
    return True


class ShareService:

    def __init__(self, db: Session):
        self.db = db
        self.folders = FolderRepository(db)
        self.files = FileRepository(db)

    def get_item(self, item_id, item_type: str, user_id: int) -> Shareable:
        if item_type not in ITEM_TYPES:
            raise ValidationError("item_type must be 'file' or 'folder'", field="item_type")
        if item_type == "folder":
            return self.folders.get_owned(item_id, user_id)
        return self.files.get_owned(item_id, user_id)

    def create_share(
        self,
        item_id,
        item_type: str,
        expires_in: str,
        user_id: int,
        password: Optional[str] = None,
        custom_expires_at: Optional[int] = None,
    ) -> str:
        """Issue a fresh share token for a file or folder. Replaces any previous one."""
        item = self.get_item(item_id, item_type, user_id)
        item.share_token = generate_share_token()
        item.share_expires_at = compute_share_expiry(expires_in, now_ms(), custom_expires_at)
        item.share_password = bcrypt.hash(password) if password else None
        self.db.commit()
        logger.info(
            "Share link created",
            extra={"user_id": user_id, "item_type": item_type, "expires_at": item.share_expires_at},
        )
        return item.share_token

    def cancel_share(self, item_id, item_type: str, user_id: int) -> None:
        item = self.get_item(item_id, item_type, user_id)
        item.share_token = None
        item.share_expires_at = None
        item.share_password = None
        self.db.commit()

    def get_file_by_share_token(self, token: str) -> Optional[StoredFile]:
        item = self.files.find_by_share_token(token)
        if not is_share_live(item) or item.is_deleted:
            return None
        return item

    def get_folder_by_share_token(self, token: str) -> Optional[Folder]:
        item = self.folders.find_by_share_token(token)
        if not is_share_live(item) or item.is_deleted:
            return None
        return item

    def get_active_shares(self, user_id: int) -> List[Shareable]:
        now = now_ms()
        return [*self.files.list_shared(user_id, now), *self.folders.list_shared(user_id, now)]

    @staticmethod
    def verify_share_password(item: Shareable, password: Optional[str]) -> bool:
        """True when the share has no password or *password* matches it."""
        if not item.share_password:
            return True
        if not password:
            return False
        return bcrypt.verify(password, item.share_password)

    # --- Folder locks ---

    def set_folder_password(self, folder_id: int, password: Optional[str], user_id: int) -> Folder:
        """Lock a folder, or unlock it when *password* is empty."""
        folder = self.folders.get_owned(folder_id, user_id)
        folder.password = bcrypt.hash(password) if password else None
        self.db.commit()
        logger.info(
            "Folder lock changed",
            extra={"user_id": user_id, "folder_id": folder_id, "locked": folder.is_locked},
        )
        return folder

    def verify_folder_password(self, folder_id: int, password: str, user_id: int) -> bool:
        folder = self.folders.get_owned(folder_id, user_id)
        if not folder.password:
            return True
        return bool(password) and bcrypt.verify(password, folder.password)

    def is_path_locked(self, folder_id: int, user_id: int) -> bool:
        return tree_walker.is_path_locked(self.db, folder_id, user_id)
