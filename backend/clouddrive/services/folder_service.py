"""Folder browsing, breadcrumbs and search."""

import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from ..exceptions import FolderNotFoundError
from ..models.folder import Folder
from ..repositories.file_repository import FileRepository
from ..repositories.folder_repository import FolderRepository
from .tree_walker import iter_ancestors, locked_folder_ids

logger = logging.getLogger(__name__)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FolderService:
    """Read-side operations over one user's tree.

    Locks do not hide anything from the owner's normal listing; they only
    filter search results.
    """

    def __init__(self, db: Session):
        self.db = db
        self.folders = FolderRepository(db)
        self.files = FileRepository(db)

    def get_root(self, user_id: int) -> Folder:
        root = self.folders.get_root(user_id)
        if root is None:
            raise FolderNotFoundError("root")
        return root

    def get_active_folder(self, folder_id: int, user_id: int) -> Folder:
        folder = self.folders.get_owned(folder_id, user_id)
        if folder.is_deleted:
            raise FolderNotFoundError(folder_id)
        return folder

    def get_contents(self, folder_id: int, user_id: int) -> Dict[str, list]:
        """Active sub-folders and files directly inside a folder, by name."""
        folder = self.get_active_folder(folder_id, user_id)
        return {
            "folder": folder,
            "folders": self.folders.list_children(folder.id, user_id),
            "files": self.files.list_in_folder(folder.id, user_id),
        }

    def get_path(self, folder_id: int, user_id: int) -> List[Folder]:
        """Breadcrumbs from the root down to *folder_id*."""
        chain = list(iter_ancestors(self.db, folder_id, user_id))
        chain.reverse()
        return chain

    def list_all(self, user_id: int) -> List[Folder]:
        return self.folders.list_active(user_id)

    def search(self, query: str, user_id: int) -> Dict[str, list]:
        """Substring match on names, excluding anything under a locked folder.

        Root folders are never returned as hits.
        """
        term = (query or "").strip()
        if not term:
            return {"folders": [], "files": []}
        pattern = f"%{_escape_like(term)}%"

        locked = locked_folder_ids(self.db.query(Folder).filter(Folder.user_id == user_id).all())
        folders = [f for f in self.folders.search_active(user_id, pattern) if f.id not in locked]
        files = [f for f in self.files.search_active(user_id, pattern) if f.folder_id not in locked]
        logger.debug(
            "Search finished",
            extra={"user_id": user_id, "folders": len(folders), "files": len(files)},
        )
        return {"folders": folders, "files": files}
