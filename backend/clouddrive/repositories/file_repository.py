"""Repository for file rows."""

from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import aliased

from ..exceptions import FileNotFoundInDriveError
from ..models.file import StoredFile
from ..models.folder import Folder
from .base import BaseRepository


class FileRepository(BaseRepository[StoredFile]):
    """Owner-scoped queries over the ``files`` table."""

    model_class = StoredFile
    id_column = "message_id"
    not_found_error = FileNotFoundInDriveError

    def find_active_in_folder(self, folder_id: int, name: str, user_id: int) -> Optional[StoredFile]:
        return (
            self._owned(user_id)
            .filter(
                StoredFile.folder_id == folder_id,
                StoredFile.file_name == name,
                StoredFile.is_deleted == 0,
            )
            .first()
        )

    def find_trashed_in_folder(self, folder_id: int, name: str, user_id: int) -> Optional[StoredFile]:
        return (
            self._owned(user_id)
            .filter(
                StoredFile.folder_id == folder_id,
                StoredFile.file_name == name,
                StoredFile.is_deleted == 1,
            )
            .first()
        )

    def list_in_folder(self, folder_id: int, user_id: int, active_only: bool = True) -> List[StoredFile]:
        query = self._owned(user_id).filter(StoredFile.folder_id == folder_id)
        if active_only:
            query = query.filter(StoredFile.is_deleted == 0)
        return query.order_by(StoredFile.file_name).all()

    def list_trashed_ids(self, user_id: int) -> List[str]:
        rows = (
            self.db.query(StoredFile.message_id)
            .filter(StoredFile.user_id == user_id, StoredFile.is_deleted == 1)
            .all()
        )
        return [r[0] for r in rows]

    def list_trash_top_level(self, user_id: int) -> List[StoredFile]:
        """Trashed files whose folder is absent or still active."""
        parent = aliased(Folder)
        return (
            self.db.query(StoredFile)
            .outerjoin(parent, StoredFile.folder_id == parent.id)
            .filter(
                StoredFile.user_id == user_id,
                StoredFile.is_deleted == 1,
                or_(parent.id.is_(None), parent.is_deleted == 0),
            )
            .order_by(StoredFile.deleted_at.desc())
            .all()
        )

    def used_bytes(self, user_id: int) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(StoredFile.size), 0))
            .filter(StoredFile.user_id == user_id, StoredFile.is_deleted == 0)
            .scalar()
        )
        return int(total or 0)

    def used_bytes_by_user(self) -> Dict[int, int]:
        rows = (
            self.db.query(StoredFile.user_id, func.sum(StoredFile.size))
            .filter(StoredFile.is_deleted == 0)
            .group_by(StoredFile.user_id)
            .all()
        )
        return {user_id: int(total or 0) for user_id, total in rows}

    def active_physical_ids(self, user_id: int) -> set:
        rows = (
            self.db.query(StoredFile.physical_id)
            .filter(
                StoredFile.user_id == user_id,
                StoredFile.is_deleted == 0,
                StoredFile.physical_id.isnot(None),
            )
            .all()
        )
        return {r[0] for r in rows}

    def find_by_share_token(self, token: str) -> Optional[StoredFile]:
        return self.db.query(StoredFile).filter(StoredFile.share_token == token).first()

    def list_shared(self, user_id: int, now: int) -> List[StoredFile]:
        return (
            self._owned(user_id)
            .filter(
                StoredFile.share_token.isnot(None),
                or_(StoredFile.share_expires_at.is_(None), StoredFile.share_expires_at > now),
            )
            .all()
        )

    def search_active(self, user_id: int, pattern: str) -> List[StoredFile]:
        return (
            self._owned(user_id)
            .filter(StoredFile.file_name.like(pattern, escape="\\"), StoredFile.is_deleted == 0)
            .order_by(StoredFile.date.desc())
            .all()
        )
