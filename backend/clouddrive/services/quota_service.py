"""Storage quota accounting.

Usage is recomputed from the files table on every call; there is no
running counter to drift.
"""

import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from ..exceptions import QuotaExceededError, UserNotFoundError, ValidationError
from ..models.user import DEFAULT_MAX_STORAGE_BYTES
from ..repositories.file_repository import FileRepository
from ..repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quota:
    used: int
    max: int  # 0 = unlimited

    @property
    def unlimited(self) -> bool:
        return self.max == 0

    def allows(self, incoming: int) -> bool:
        return self.unlimited or self.used + incoming <= self.max


class QuotaService:

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.files = FileRepository(db)

    def get_user_quota(self, user_id: int) -> Quota:
        user = self.users.get(user_id)
        maximum = user.effective_max_storage if user is not None else DEFAULT_MAX_STORAGE_BYTES
        return Quota(used=self.files.used_bytes(user_id), max=maximum)

    def check_quota(self, user_id: int, incoming: int) -> bool:
        return self.get_user_quota(user_id).allows(incoming)

    def ensure_quota(self, user_id: int, incoming: int) -> Quota:
        """Raise QuotaExceededError unless *incoming* bytes still fit."""
        quota = self.get_user_quota(user_id)
        if not quota.allows(incoming):
            logger.info(
                "Upload rejected by quota",
                extra={"user_id": user_id, "used": quota.used, "incoming": incoming, "max": quota.max},
            )
            raise QuotaExceededError(quota.used, incoming, quota.max)
        return quota

    def list_users_with_quota(self) -> List[dict]:
        usage = self.files.used_bytes_by_user()
        return [
            {
                "id": user.id,
                "username": user.username,
                "is_admin": bool(user.is_admin),
                "max_storage_bytes": user.effective_max_storage,
                "used_storage_bytes": usage.get(user.id, 0),
            }
            for user in self.users.list_all()
        ]

    def set_max_storage(self, user_id: int, max_bytes: int, commit: bool = True) -> None:
        """Set a non-admin user's ceiling. 0 means unlimited."""
        if max_bytes < 0:
            raise ValidationError("max_storage_bytes must be >= 0", field="max_storage_bytes")
        user = self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if user.is_admin:
            raise ValidationError("Admin quotas cannot be changed", field="user_id")

        user.max_storage_bytes = max_bytes
        if commit:
            self.db.commit()
        logger.info("Storage quota updated", extra={"user_id": user_id, "max": max_bytes})
