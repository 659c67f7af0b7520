"""Repository for folder rows."""

from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import aliased

from ..exceptions import FolderNotFoundError
from ..models.file import StoredFile
from ..models.folder import Folder
from .base import BaseRepository

ROOT_FOLDER_NAME = "/"


class FolderRepository(BaseRepository[Folder]):
    """Owner-scoped queries over the ``folders`` table."""

    model_class = Folder
    not_found_error = FolderNotFoundError

    def get_root(self, user_id: int) -> Optional[Folder]:
        return (
            self._owned(user_id)
            .filter(Folder.parent_id.is_(None))
            .order_by(Folder.id)
            .first()
        )

    def create(self, name: str, parent_id: Optional[int], user_id: int) -> Folder:
        folder = Folder(name=name, parent_id=parent_id, user_id=user_id, is_deleted=0)
        self.db.add(folder)
        self.db.flush()
        return folder

    def find_active_child(self, parent_id: int, name: str, user_id: int) -> Optional[Folder]:
        return (
            self._owned(user_id)
            .filter(Folder.parent_id == parent_id, Folder.name == name, Folder.is_deleted == 0)
            .first()
        )

    def find_trashed_child(self, parent_id: Optional[int], name: str, user_id: int) -> Optional[Folder]:
        parent_clause = Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id
        return (
            self._owned(user_id)
            .filter(parent_clause, Folder.name == name, Folder.is_deleted == 1)
            .first()
        )

    def list_children(self, parent_id: int, user_id: int, active_only: bool = True) -> List[Folder]:
        query = self._owned(user_id).filter(Folder.parent_id == parent_id)
        if active_only:
            query = query.filter(Folder.is_deleted == 0)
        return query.order_by(Folder.name).all()

    def has_active_children(self, folder_id: int, user_id: int) -> bool:
        """True if any active file or sub-folder sits directly in the folder."""
        child_folder = (
            self._owned(user_id)
            .filter(Folder.parent_id == folder_id, Folder.is_deleted == 0)
            .first()
        )
        if child_folder is not None:
            return True
        child_file = (
            self.db.query(StoredFile.message_id)
            .filter(
                StoredFile.folder_id == folder_id,
                StoredFile.user_id == user_id,
                StoredFile.is_deleted == 0,
            )
            .first()
        )
        return child_file is not None

    def list_active(self, user_id: int) -> List[Folder]:
        return (
            self._owned(user_id)
            .filter(Folder.is_deleted == 0)
            .order_by(Folder.parent_id, Folder.name)
            .all()
        )

    def list_trashed_ids(self, user_id: int) -> List[int]:
        rows = self.db.query(Folder.id).filter(Folder.user_id == user_id, Folder.is_deleted == 1).all()
        return [r[0] for r in rows]

    def list_trash_top_level(self, user_id: int) -> List[Folder]:
        """Trashed folders whose parent is absent, the root, or still active."""
        parent = aliased(Folder)
        return (
            self.db.query(Folder)
            .outerjoin(parent, Folder.parent_id == parent.id)
            .filter(
                Folder.user_id == user_id,
                Folder.is_deleted == 1,
                or_(Folder.parent_id.is_(None), parent.id.is_(None), parent.is_deleted == 0),
            )
            .order_by(Folder.deleted_at.desc())
            .all()
        )

    def find_by_share_token(self, token: str) -> Optional[Folder]:
        return self.db.query(Folder).filter(Folder.share_token == token).first()

    def list_shared(self, user_id: int, now: int) -> List[Folder]:
        return (
            self._owned(user_id)
            .filter(
                Folder.share_token.isnot(None),
                or_(Folder.share_expires_at.is_(None), Folder.share_expires_at > now),
            )
            .all()
        )

    def search_active(self, user_id: int, pattern: str) -> List[Folder]:
        return (
            self._owned(user_id)
            .filter(
                and_(Folder.name.like(pattern, escape="\\"), Folder.is_deleted == 0, Folder.parent_id.isnot(None))
            )
            .order_by(Folder.name)
            .all()
        )
