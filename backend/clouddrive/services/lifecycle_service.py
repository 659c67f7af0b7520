"""Lifecycle engine for folders and files.

Items move Active -> Trashed (soft delete) -> Active (restore), or
Trashed -> Purged (rows removed, payloads removed best-effort). Locked
folders never enter Trashed or Purged.

Every public operation runs in the caller's session as one transaction
and commits once at the end (unless ``commit=False``); an exception
leaves nothing half-applied. Payload removal is the exception: it runs
before row deletion and cannot be rolled back.

Name checks query the database, and the session does not autoflush, so
every mutation below is flushed before the next lookup.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from ..core.token_factory import now_ms
from ..exceptions import (
    FileNotFoundInDriveError,
    FolderNotFoundError,
    LockedFolderError,
    NameConflictError,
    ValidationError,
)
from ..models.file import StoredFile
from ..models.folder import Folder
from ..repositories.file_repository import FileRepository
from ..repositories.folder_repository import FolderRepository
from ..schemas.lifecycle import OperationResult, PurgeResult, SoftDeleteResult
from ..storage.base import StorageBackend
from .naming import KIND_FILE, KIND_FOLDER, get_unique_name, validate_name
from .trash_conflict import run_with_trash_retry
from .tree_walker import DeletionScope, collect_deletion_scope, ensure_can_reparent, iter_ancestors

logger = logging.getLogger(__name__)

OVERWRITE = "overwrite"
RENAME = "rename"
SKIP = "skip"
CONFLICT_MODES = (OVERWRITE, RENAME, SKIP)


def overwritten_placeholder(name: str) -> str:
    """Name given to an active file displaced into the trash by an overwrite."""
    return f"{name}_overwritten_{now_ms()}"


class LifecycleService:
    """Tree mutations for one user's folders and files.

    The storage backend is only needed by purge operations. When it is
    None, purges still delete rows and log that payloads were left behind.
    """

    def __init__(self, db: Session, storage: Optional[StorageBackend] = None):
        self.db = db
        self.storage = storage
        self.folders = FolderRepository(db)
        self.files = FileRepository(db)

    # --- Creation and renaming ---

    def create_folder(self, name: str, parent_id: int, user_id: int, commit: bool = True) -> Folder:
        """Create an active folder; a trashed namesake is moved aside."""
        name = validate_name(name)
        parent = self._require_active_folder(parent_id, user_id)
        if self.folders.find_active_child(parent.id, name, user_id) is not None:
            raise NameConflictError(name, parent.id)

        folder = run_with_trash_retry(
            self.db,
            lambda: self.folders.create(name, parent.id, user_id),
            KIND_FOLDER, name, parent.id, user_id,
        )
        if commit:
            self.db.commit()
        logger.info("Folder created", extra={"user_id": user_id, "folder_id": folder.id})
        return folder

    def rename_folder(self, folder_id: int, new_name: str, user_id: int, commit: bool = True) -> Folder:
        new_name = validate_name(new_name)
        folder = self._require_active_folder(folder_id, user_id)
        if folder.parent_id is None:
            raise ValidationError("The root folder cannot be renamed", field="folder_id")
        if folder.name == new_name:
            return folder

        existing = self.folders.find_active_child(folder.parent_id, new_name, user_id)
        if existing is not None:
            raise NameConflictError(new_name, folder.parent_id)
        self._place_folder(folder, folder.parent_id, new_name, user_id)
        if commit:
            self.db.commit()
        return folder

    def rename_file(self, message_id: str, new_name: str, user_id: int, commit: bool = True) -> StoredFile:
        new_name = validate_name(new_name, field="file_name")
        file = self.files.get_owned(message_id, user_id)
        if file.is_deleted:
            raise FileNotFoundInDriveError(message_id)
        if file.file_name == new_name:
            return file

        existing = self.files.find_active_in_folder(file.folder_id, new_name, user_id)
        if existing is not None:
            raise NameConflictError(new_name, file.folder_id)
        self._place_file(file, file.folder_id, new_name, user_id)
        if commit:
            self.db.commit()
        return file

    # --- Soft delete and purge ---

    def soft_delete_items(
        self,
        file_ids: Iterable[str],
        folder_ids: Iterable[int],
        user_id: int,
        commit: bool = True,
    ) -> SoftDeleteResult:
        """Move files and whole folder subtrees into the trash.

        Raises:
            LockedFolderError: If any folder in the affected subtrees, or any
                folder above a targeted item, is locked.
        """
        scope = self._folder_scope(folder_ids, user_id)
        files = self.files.get_many(file_ids, user_id)
        self._ensure_unlocked(scope, files, user_id)
        scope.extend(DeletionScope(files=files))

        now = now_ms()
        for file in scope.files:
            file.is_deleted = 1
            file.deleted_at = now
        for folder in scope.folders:
            folder.is_deleted = 1
            folder.deleted_at = now
        self.db.flush()

        if commit:
            self.db.commit()
        logger.info(
            "Items moved to trash",
            extra={"user_id": user_id, "files": len(scope.files), "folders": len(scope.folders)},
        )
        return SoftDeleteResult(trashed_files=len(scope.files), trashed_folders=len(scope.folders))

    def unified_delete(
        self,
        file_ids: Iterable[str],
        folder_ids: Iterable[int],
        user_id: int,
        commit: bool = True,
    ) -> PurgeResult:
        """Permanently delete files and folder subtrees, payloads first.

        Raises:
            LockedFolderError: If any folder in scope, or any folder above a
                targeted item, is locked.
        """
        scope = self._folder_scope(folder_ids, user_id)
        files = self.files.get_many(file_ids, user_id)
        self._ensure_unlocked(scope, files, user_id, permanent=True)
        scope.extend(DeletionScope(files=files))

        storage_failed = self._remove_payloads(scope, user_id)

        deleted_files = self.files.delete_ids(scope.file_ids, user_id)
        deleted_folders = self.folders.delete_ids(reversed(scope.folder_ids), user_id)
        if commit:
            self.db.commit()

        logger.info(
            "Items purged",
            extra={"user_id": user_id, "files": deleted_files, "folders": deleted_folders},
        )
        return PurgeResult(
            deleted_files=deleted_files,
            deleted_folders=deleted_folders,
            storage_cleanup_failed=storage_failed,
        )

    def empty_trash(self, user_id: int, commit: bool = True) -> PurgeResult:
        file_ids = self.files.list_trashed_ids(user_id)
        folder_ids = self.folders.list_trashed_ids(user_id)
        if not file_ids and not folder_ids:
            return PurgeResult()
        return self.unified_delete(file_ids, folder_ids, user_id, commit=commit)

    def get_trash_contents(self, user_id: int) -> Dict[str, list]:
        """Top-level trashed items, newest first.

        Items whose parent is itself trashed are omitted; they come back
        with that parent.
        """
        return {
            "folders": self.folders.list_trash_top_level(user_id),
            "files": self.files.list_trash_top_level(user_id),
        }

    # --- Move and merge ---

    def move_items(
        self,
        file_ids: Iterable[str],
        folder_ids: Iterable[int],
        target_id: int,
        user_id: int,
        conflict_mode: str = RENAME,
        commit: bool = True,
    ) -> OperationResult:
        """Move files and folders into *target_id*.

        On a name clash with an active item in the target:
            overwrite: files displace the occupant into the trash, folders
                       merge into it and the emptied source is removed.
            rename:    the moved item takes the next free "name (n)".
            skip:      the item stays where it is.

        Raises:
            SelfContainmentError: If a folder would land inside itself.
        """
        self._check_mode(conflict_mode)
        target = self._require_active_folder(target_id, user_id)

        sources: List[Folder] = []
        for folder in self.folders.get_many(folder_ids, user_id):
            if folder.parent_id is None:
                raise ValidationError("The root folder cannot be moved", field="folder_ids")
            ensure_can_reparent(self.db, folder.id, target.id, user_id)
            sources.append(folder)

        result = OperationResult()
        for message_id in file_ids:
            file = self.files.get_owned_optional(message_id, user_id)
            if file is None or file.is_deleted or file.folder_id == target.id:
                result.skipped += 1
                continue
            self._move_file_into(file, target.id, user_id, conflict_mode, result)

        for folder in sources:
            if folder.is_deleted or folder.parent_id == target.id:
                result.skipped += 1
                continue

            existing = self.folders.find_active_child(target.id, folder.name, user_id)
            if existing is None:
                self._place_folder(folder, target.id, folder.name, user_id)
            elif conflict_mode == OVERWRITE:
                self._merge_tree(folder.id, existing.id, user_id, conflict_mode, result)
                result.merged += 1
            elif conflict_mode == SKIP:
                result.skipped += 1
                continue
            else:
                new_name = get_unique_name(self.db, target.id, folder.name, user_id, KIND_FOLDER)
                self._place_folder(folder, target.id, new_name, user_id)
                result.renamed += 1
            result.processed += 1

        if commit:
            self.db.commit()
        logger.info(
            "Items moved",
            extra={"user_id": user_id, "target_id": target.id, "mode": conflict_mode, **result.model_dump()},
        )
        return result

    def merge_folders(
        self,
        source_id: int,
        target_id: int,
        user_id: int,
        conflict_mode: str = OVERWRITE,
        commit: bool = True,
    ) -> OperationResult:
        """Merge the contents of *source_id* into *target_id*.

        Files clash per *conflict_mode*. Same-named sub-folders are merged
        recursively under overwrite, renamed under rename, left behind under
        skip. Sub-folders without a namesake are re-parented whole. Source
        folders left with no active children are deleted.
        """
        self._check_mode(conflict_mode)
        source = self._require_active_folder(source_id, user_id)
        target = self._require_active_folder(target_id, user_id)
        if source.parent_id is None:
            raise ValidationError("The root folder cannot be merged away", field="source_folder_id")
        ensure_can_reparent(self.db, source.id, target.id, user_id)

        result = OperationResult()
        self._merge_tree(source.id, target.id, user_id, conflict_mode, result)
        result.merged += 1
        if commit:
            self.db.commit()
        logger.info(
            "Folders merged",
            extra={"user_id": user_id, "source_id": source_id, "target_id": target_id, "mode": conflict_mode},
        )
        return result

    def _merge_tree(self, source_id: int, target_id: int, user_id: int,
                    conflict_mode: str, result: OperationResult) -> None:
        # Frames: ("merge", src, dst) then ("cleanup", src, None) once the
        # merge frames above it have finished.
        stack = [("cleanup", source_id, None), ("merge", source_id, target_id)]
        while stack:
            action, src, dst = stack.pop()
            if action == "cleanup":
                if not self.folders.has_active_children(src, user_id):
                    self.folders.delete_ids([src], user_id)
                    self.db.flush()
                    logger.debug("Removed emptied folder shell %s", src, extra={"user_id": user_id})
                continue

            for file in self.files.list_in_folder(src, user_id):
                self._move_file_into(file, dst, user_id, conflict_mode, result)

            nested = []
            for sub in self.folders.list_children(src, user_id):
                existing = self.folders.find_active_child(dst, sub.name, user_id)
                if existing is None:
                    self._place_folder(sub, dst, sub.name, user_id)
                    result.processed += 1
                elif conflict_mode == OVERWRITE:
                    nested.append((sub.id, existing.id))
                    result.merged += 1
                elif conflict_mode == RENAME:
                    new_name = get_unique_name(self.db, dst, sub.name, user_id, KIND_FOLDER)
                    self._place_folder(sub, dst, new_name, user_id)
                    result.renamed += 1
                else:
                    result.skipped += 1

            for sub_id, existing_id in reversed(nested):
                stack.append(("cleanup", sub_id, None))
                stack.append(("merge", sub_id, existing_id))

    def _move_file_into(self, file: StoredFile, folder_id: int, user_id: int,
                        conflict_mode: str, result: OperationResult) -> None:
        name = file.file_name
        existing = self.files.find_active_in_folder(folder_id, name, user_id)
        if existing is not None:
            if conflict_mode == OVERWRITE:
                self._displace(existing)
                result.overwritten += 1
            elif conflict_mode == SKIP:
                result.skipped += 1
                return
            else:
                name = get_unique_name(self.db, folder_id, name, user_id, KIND_FILE)
                result.renamed += 1
        self._place_file(file, folder_id, name, user_id)
        result.processed += 1

    # --- Restore ---

    def restore_items(
        self,
        file_ids: Iterable[str],
        folder_ids: Iterable[int],
        user_id: int,
        conflict_mode: str = RENAME,
        commit: bool = True,
    ) -> OperationResult:
        """Bring trashed items back to their original folder.

        The original parent is used when it still exists and is active,
        otherwise the user's root. Clashes follow *conflict_mode*; a folder
        restored under overwrite is merged into its active namesake.
        """
        self._check_mode(conflict_mode)
        root = self._require_root(user_id)
        result = OperationResult()

        for folder_id in folder_ids:
            folder = self.folders.get_owned_optional(folder_id, user_id)
            if folder is None or not folder.is_deleted:
                result.skipped += 1
                continue

            parent_id = self._restore_parent(folder.parent_id, root, user_id)
            existing = self.folders.find_active_child(parent_id, folder.name, user_id)
            if existing is None:
                self._place_folder(folder, parent_id, folder.name, user_id, restore=True)
                self.cascade_restore(folder.id, user_id, commit=False)
            elif conflict_mode == OVERWRITE:
                self.restore_and_merge(folder.id, existing.id, user_id, conflict_mode, result, commit=False)
                result.merged += 1
            elif conflict_mode == SKIP:
                result.skipped += 1
                continue
            else:
                new_name = get_unique_name(self.db, parent_id, folder.name, user_id, KIND_FOLDER)
                self._place_folder(folder, parent_id, new_name, user_id, restore=True)
                self.cascade_restore(folder.id, user_id, commit=False)
                result.renamed += 1
            result.processed += 1

        for message_id in file_ids:
            file = self.files.get_owned_optional(message_id, user_id)
            if file is None or not file.is_deleted:
                result.skipped += 1
                continue
            folder_id = self._restore_parent(file.folder_id, root, user_id)
            self._restore_file_into(file, folder_id, user_id, conflict_mode, result)

        if commit:
            self.db.commit()
        logger.info(
            "Items restored",
            extra={"user_id": user_id, "mode": conflict_mode, **result.model_dump()},
        )
        return result

    def restore_and_merge(
        self,
        source_id: int,
        target_id: int,
        user_id: int,
        conflict_mode: str = OVERWRITE,
        result: Optional[OperationResult] = None,
        commit: bool = True,
    ) -> OperationResult:
        """Merge a trashed folder into an active one, restoring all it carries.

        Walks children in any state. Each relocated item has its deleted flag
        cleared; sub-folders without an active namesake are restored along
        with their whole subtree. Merged-away shells are deleted.
        """
        result = result or OperationResult()
        stack = [("cleanup", source_id, None), ("merge", source_id, target_id)]
        while stack:
            action, src, dst = stack.pop()
            if action == "cleanup":
                leftovers = (
                    self.files.list_in_folder(src, user_id, active_only=False)
                    or self.folders.list_children(src, user_id, active_only=False)
                )
                if leftovers:
                    logger.debug("Folder %s kept after restore merge", src, extra={"user_id": user_id})
                else:
                    self.folders.delete_ids([src], user_id)
                    self.db.flush()
                continue

            for file in self.files.list_in_folder(src, user_id, active_only=False):
                self._restore_file_into(file, dst, user_id, conflict_mode, result)

            nested = []
            for sub in self.folders.list_children(src, user_id, active_only=False):
                existing = self.folders.find_active_child(dst, sub.name, user_id)
                if existing is None:
                    self._place_folder(sub, dst, sub.name, user_id, restore=True)
                    self.cascade_restore(sub.id, user_id, commit=False)
                    result.processed += 1
                elif conflict_mode == OVERWRITE:
                    nested.append((sub.id, existing.id))
                    result.merged += 1
                elif conflict_mode == RENAME:
                    new_name = get_unique_name(self.db, dst, sub.name, user_id, KIND_FOLDER)
                    self._place_folder(sub, dst, new_name, user_id, restore=True)
                    self.cascade_restore(sub.id, user_id, commit=False)
                    result.renamed += 1
                else:
                    result.skipped += 1

            for sub_id, existing_id in reversed(nested):
                stack.append(("cleanup", sub_id, None))
                stack.append(("merge", sub_id, existing_id))

        if commit:
            self.db.commit()
        return result

    def cascade_restore(self, folder_id: int, user_id: int, commit: bool = True) -> int:
        """Clear the deleted flag on every descendant of *folder_id*.

        A descendant whose name now clashes with an active sibling gets the
        next free "name (n)".

        Returns:
            Number of rows restored.
        """
        restored = 0
        visited: Set[int] = {folder_id}
        queue = deque([folder_id])
        while queue:
            current = queue.popleft()
            for file in self.files.list_in_folder(current, user_id, active_only=False):
                if file.is_deleted:
                    file.file_name = get_unique_name(self.db, current, file.file_name, user_id, KIND_FILE)
                    file.is_deleted = 0
                    file.deleted_at = None
                    self.db.flush()
                    restored += 1
            for sub in self.folders.list_children(current, user_id, active_only=False):
                if sub.is_deleted:
                    sub.name = get_unique_name(self.db, current, sub.name, user_id, KIND_FOLDER)
                    sub.is_deleted = 0
                    sub.deleted_at = None
                    self.db.flush()
                    restored += 1
                if sub.id not in visited:
                    visited.add(sub.id)
                    queue.append(sub.id)

        if commit:
            self.db.commit()
        return restored

    def _restore_file_into(self, file: StoredFile, folder_id: int, user_id: int,
                           conflict_mode: str, result: OperationResult) -> None:
        name = file.file_name
        existing = self.files.find_active_in_folder(folder_id, name, user_id)
        if existing is not None and existing.message_id != file.message_id:
            if conflict_mode == OVERWRITE:
                self._displace(existing)
                result.overwritten += 1
            elif conflict_mode == SKIP:
                result.skipped += 1
                return
            else:
                name = get_unique_name(self.db, folder_id, name, user_id, KIND_FILE)
                result.renamed += 1
        self._place_file(file, folder_id, name, user_id, restore=True)
        result.processed += 1

    def _restore_parent(self, parent_id: Optional[int], root: Folder, user_id: int) -> int:
        if parent_id is None:
            return root.id
        parent = self.folders.get_owned_optional(parent_id, user_id)
        if parent is None or parent.is_deleted:
            return root.id
        return parent.id

    # --- Helpers ---

    def _place_file(self, file: StoredFile, folder_id: int, name: str, user_id: int,
                    restore: bool = False) -> None:
        def apply():
            file.folder_id = folder_id
            file.file_name = name
            if restore:
                file.is_deleted = 0
                file.deleted_at = None

        run_with_trash_retry(self.db, apply, KIND_FILE, name, folder_id, user_id)

    def _place_folder(self, folder: Folder, parent_id: int, name: str, user_id: int,
                      restore: bool = False) -> None:
        def apply():
            folder.parent_id = parent_id
            folder.name = name
            if restore:
                folder.is_deleted = 0
                folder.deleted_at = None

        run_with_trash_retry(self.db, apply, KIND_FOLDER, name, parent_id, user_id)

    def _displace(self, file: StoredFile) -> None:
        """Trash an active file under a placeholder name, freeing its slot."""
        file.file_name = overwritten_placeholder(file.file_name)
        file.is_deleted = 1
        file.deleted_at = now_ms()
        self.db.flush()

    def _folder_scope(self, folder_ids: Iterable[int], user_id: int) -> DeletionScope:
        scope = DeletionScope()
        for folder in self.folders.get_many(folder_ids, user_id):
            if folder.parent_id is None:
                raise ValidationError("The root folder cannot be deleted", field="folder_ids")
            scope.extend(collect_deletion_scope(self.db, folder.id, user_id))
        return scope

    def _remove_payloads(self, scope: DeletionScope, user_id: int) -> bool:
        """Ask the backend to drop payloads. Returns True if that failed."""
        if not scope.files and not scope.folders:
            return False
        if self.storage is None:
            logger.warning(
                "No storage backend configured; payloads left in place",
                extra={"user_id": user_id, "files": len(scope.files)},
            )
            return True
        try:
            self.storage.remove(scope.files, scope.folders, user_id)
        except Exception:
            logger.warning(
                "Payload removal failed; purging metadata anyway",
                exc_info=True,
                extra={"user_id": user_id, "backend": self.storage.name},
            )
            return True
        return False

    def _require_active_folder(self, folder_id: int, user_id: int) -> Folder:
        folder = self.folders.get_owned(folder_id, user_id)
        if folder.is_deleted:
            raise FolderNotFoundError(folder_id)
        return folder

    def _require_root(self, user_id: int) -> Folder:
        root = self.folders.get_root(user_id)
        if root is None:
            raise FolderNotFoundError("root")
        return root

    def _ensure_unlocked(
        self,
        scope: DeletionScope,
        files: List[StoredFile],
        user_id: int,
        permanent: bool = False,
    ) -> None:
        """Raise LockedFolderError if a lock covers any folder or file about to be deleted.

        Folders in *scope* are checked directly. The folders that contain
        the targets from outside the scope are checked with their ancestry.
        """
        locked = self._first_locked(scope.folders)
        if locked is None:
            scope_ids = set(scope.folder_ids)
            containers = {f.parent_id for f in scope.folders} | {f.folder_id for f in files}
            for container_id in sorted(c for c in containers if c is not None and c not in scope_ids):
                locked = self._first_locked(iter_ancestors(self.db, container_id, user_id))
                if locked is not None:
                    break
        if locked is not None:
            raise LockedFolderError(locked.name, permanent=permanent)

    @staticmethod
    def _first_locked(folders: Iterable[Folder]) -> Optional[Folder]:
        return next((f for f in folders if f.is_locked), None)

    @staticmethod
    def _check_mode(conflict_mode: str) -> None:
        if conflict_mode not in CONFLICT_MODES:
            raise ValidationError(
                f"conflict_mode must be one of {', '.join(CONFLICT_MODES)}",
                field="conflict_mode",
            )
