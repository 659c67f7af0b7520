"""Traversals over a user's folder tree.

All walks use an explicit queue, never recursion. ``collect_deletion_scope``
visits breadth-first: ``folders[0]`` is the start folder and every folder
appears after its parent, so ``reversed(scope.folders)`` is a safe
children-first delete order.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..exceptions import SelfContainmentError
from ..models.file import StoredFile
from ..models.folder import Folder

logger = logging.getLogger(__name__)


@dataclass
class DeletionScope:
    """Every file and folder transitively contained in one or more folders."""

    files: List[StoredFile] = field(default_factory=list)
    folders: List[Folder] = field(default_factory=list)

    @property
    def file_ids(self) -> List[str]:
        return [f.message_id for f in self.files]

    @property
    def folder_ids(self) -> List[int]:
        return [f.id for f in self.folders]

    def extend(self, other: "DeletionScope") -> None:
        """Merge *other* in, keeping first-seen order and dropping duplicates."""
        seen_files = set(self.file_ids)
        seen_folders = set(self.folder_ids)
        self.files.extend(f for f in other.files if f.message_id not in seen_files)
        self.folders.extend(f for f in other.folders if f.id not in seen_folders)


def collect_deletion_scope(db: Session, folder_id: int, user_id: int) -> DeletionScope:
    """Collect the folder, its descendants and all their files, in any state."""
    scope = DeletionScope()
    start = (
        db.query(Folder)
        .filter(Folder.id == folder_id, Folder.user_id == user_id)
        .first()
    )
    if start is None:
        return scope

    visited: Set[int] = {start.id}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        scope.folders.append(current)
        scope.files.extend(
            db.query(StoredFile)
            .filter(StoredFile.folder_id == current.id, StoredFile.user_id == user_id)
            .all()
        )
        children = (
            db.query(Folder)
            .filter(Folder.parent_id == current.id, Folder.user_id == user_id)
            .order_by(Folder.id)
            .all()
        )
        for child in children:
            if child.id in visited:
                logger.error("Folder cycle detected at %s", child.id, extra={"user_id": user_id})
                continue
            visited.add(child.id)
            queue.append(child)
    return scope


def iter_ancestors(db: Session, folder_id: Optional[int], user_id: int) -> Iterator[Folder]:
    """Yield the folder itself, then each parent up to the root."""
    visited: Set[int] = set()
    current_id = folder_id
    while current_id is not None and current_id not in visited:
        visited.add(current_id)
        folder = (
            db.query(Folder)
            .filter(Folder.id == current_id, Folder.user_id == user_id)
            .first()
        )
        if folder is None:
            return
        yield folder
        current_id = folder.parent_id


def is_descendant(db: Session, ancestor_id: int, candidate_id: int, user_id: int) -> bool:
    """True if *candidate_id* is *ancestor_id* or lies anywhere beneath it."""
    return any(f.id == ancestor_id for f in iter_ancestors(db, candidate_id, user_id))


def ensure_can_reparent(db: Session, folder_id: int, target_id: int, user_id: int) -> None:
    """Refuse to place a folder inside itself or one of its descendants.

    Raises:
        SelfContainmentError: If *target_id* is within *folder_id*'s subtree.
    """
    if is_descendant(db, folder_id, target_id, user_id):
        raise SelfContainmentError(folder_id, target_id)


def is_path_locked(db: Session, folder_id: int, user_id: int) -> bool:
    """True if the folder or any ancestor carries a password."""
    return any(f.is_locked for f in iter_ancestors(db, folder_id, user_id))


def locked_folder_ids(folders: List[Folder]) -> Set[int]:
    """Ids of folders whose path (self or any ancestor) is locked.

    Works on an in-memory list of one user's folders, so a search can
    filter every hit without a query per row.
    """
    by_id: Dict[int, Folder] = {f.id: f for f in folders}
    memo: Dict[int, bool] = {}

    for folder in folders:
        chain: List[int] = []
        current: Optional[Folder] = folder
        locked = False
        while current is not None:
            if current.id in memo:
                locked = memo[current.id]
                break
            if current.id in chain:
                break
            chain.append(current.id)
            if current.is_locked:
                locked = True
                break
            current = by_id.get(current.parent_id) if current.parent_id is not None else None
        for fid in chain:
            memo[fid] = locked
    return {fid for fid, locked in memo.items() if locked}


def iter_active_subtree(db: Session, folder_id: int, user_id: int) -> Iterator[Tuple[Folder, str]]:
    """Yield (folder, relative_path) for active folders under *folder_id*, breadth-first.

    The start folder's relative path is ``""``.
    """
    start = (
        db.query(Folder)
        .filter(Folder.id == folder_id, Folder.user_id == user_id, Folder.is_deleted == 0)
        .first()
    )
    if start is None:
        return

    visited: Set[int] = {start.id}
    queue = deque([(start, "")])
    while queue:
        folder, path = queue.popleft()
        yield folder, path
        children = (
            db.query(Folder)
            .filter(Folder.parent_id == folder.id, Folder.user_id == user_id, Folder.is_deleted == 0)
            .order_by(Folder.name)
            .all()
        )
        for child in children:
            if child.id in visited:
                continue
            visited.add(child.id)
            queue.append((child, f"{path}/{child.name}" if path else child.name))
