"""File registration, upload and download.

Quota is checked before any byte reaches the storage backend. If the
metadata insert fails after a successful upload, the orphaned payload is
removed best-effort.
"""

import logging
from typing import BinaryIO, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.token_factory import generate_logical_id, now_ms
from ..exceptions import FileNotFoundInDriveError, NameConflictError, StorageConfigurationError
from ..models.file import StoredFile
from ..repositories.file_repository import FileRepository
from ..repositories.folder_repository import FolderRepository
from ..storage.base import DownloadResult, StorageBackend, UploadResult
from .lifecycle_service import CONFLICT_MODES, OVERWRITE, SKIP, overwritten_placeholder
from .naming import KIND_FILE, get_unique_name, validate_name
from .quota_service import QuotaService
from .trash_conflict import run_with_trash_retry

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"


class FileService:

    def __init__(self, db: Session, storage: Optional[StorageBackend] = None):
        self.db = db
        self.storage = storage
        self.files = FileRepository(db)
        self.folders = FolderRepository(db)
        self.quota = QuotaService(db)

    def _require_storage(self) -> StorageBackend:
        if self.storage is None:
            raise StorageConfigurationError("No storage backend is configured.")
        return self.storage

    def check_exists(self, folder_id: int, file_name: str, user_id: int) -> bool:
        return self.files.find_active_in_folder(folder_id, file_name, user_id) is not None

    def get_files(self, message_ids: Iterable[str], user_id: int) -> List[StoredFile]:
        return self.files.get_many(message_ids, user_id)

    def add_file(
        self,
        folder_id: int,
        user_id: int,
        file_name: str,
        size: int,
        physical_id: Optional[str],
        mimetype: str = DEFAULT_MIMETYPE,
        thumb_physical_id: Optional[str] = None,
        backend_message_ref: Optional[str] = None,
        storage_type: Optional[str] = None,
        message_id: Optional[str] = None,
        date: Optional[int] = None,
        commit: bool = True,
    ) -> StoredFile:
        """Insert a file row into an active folder.

        Raises:
            NameConflictError: If an active file already holds the name.
        """
        file_name = validate_name(file_name, field="file_name")
        folder = self.folders.get_owned(folder_id, user_id)
        if folder.is_deleted:
            raise FileNotFoundInDriveError(file_name)
        if self.files.find_active_in_folder(folder.id, file_name, user_id) is not None:
            raise NameConflictError(file_name, folder.id)

        logical_id = message_id or generate_logical_id()

        def insert() -> StoredFile:
            row = StoredFile(
                message_id=logical_id,
                file_name=file_name,
                mimetype=mimetype or DEFAULT_MIMETYPE,
                physical_id=physical_id,
                thumb_physical_id=thumb_physical_id,
                backend_message_ref=backend_message_ref,
                date=date or now_ms(),
                size=size,
                folder_id=folder.id,
                user_id=user_id,
                storage_type=storage_type,
                is_deleted=0,
            )
            self.db.add(row)
            return row

        row = run_with_trash_retry(self.db, insert, KIND_FILE, file_name, folder.id, user_id)
        if commit:
            self.db.commit()
        return row

    def upload_file(
        self,
        folder_id: int,
        user_id: int,
        stream: BinaryIO,
        file_name: str,
        size: int,
        content_type: Optional[str] = None,
        conflict_mode: str = "rename",
    ) -> Optional[StoredFile]:
        """Store a payload and register it. Returns None when skipped on conflict.

        Raises:
            QuotaExceededError: Before contacting the backend.
            StorageBackendError: If the backend rejects the upload.
        """
        if conflict_mode not in CONFLICT_MODES:
            conflict_mode = "rename"
        storage = self._require_storage()
        file_name = validate_name(file_name, field="file_name")
        folder = self.folders.get_owned(folder_id, user_id)
        if folder.is_deleted:
            raise FileNotFoundInDriveError(file_name)

        self.quota.ensure_quota(user_id, size)

        existing = self.files.find_active_in_folder(folder.id, file_name, user_id)
        if existing is not None:
            if conflict_mode == SKIP:
                logger.info("Upload skipped on name conflict", extra={"user_id": user_id, "folder_id": folder.id})
                return None
            if conflict_mode != OVERWRITE:
                file_name = get_unique_name(self.db, folder.id, file_name, user_id, KIND_FILE)

        result = storage.upload(stream, file_name, content_type or DEFAULT_MIMETYPE, user_id, folder.id)
        try:
            if existing is not None and conflict_mode == OVERWRITE:
                existing.file_name = overwritten_placeholder(existing.file_name)
                existing.is_deleted = 1
                existing.deleted_at = now_ms()
                self.db.flush()
            row = self.add_file(
                folder.id, user_id, file_name, size,
                physical_id=result.physical_id,
                mimetype=content_type or DEFAULT_MIMETYPE,
                thumb_physical_id=result.thumbnail_id,
                backend_message_ref=result.backend_message_ref,
                storage_type=storage.name,
                commit=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            self._discard_payload(result, user_id)
            raise

        logger.info(
            "File uploaded",
            extra={"user_id": user_id, "folder_id": folder.id, "size": size, "backend": storage.name},
        )
        return row

    def _discard_payload(self, result: UploadResult, user_id: int) -> None:
        orphan = StoredFile(physical_id=result.physical_id, backend_message_ref=result.backend_message_ref)
        try:
            self._require_storage().remove([orphan], [], user_id)
        except Exception:
            logger.warning("Could not remove orphaned payload", exc_info=True, extra={"user_id": user_id})

    def open_download(self, message_id: str, user_id: int) -> Tuple[StoredFile, DownloadResult]:
        """Resolve an active owned file and open its payload stream."""
        file = self.files.get_owned(message_id, user_id)
        if file.is_deleted:
            raise FileNotFoundInDriveError(message_id)
        return file, self.open_payload(file)

    def open_payload(self, file: StoredFile) -> DownloadResult:
        if not file.physical_id:
            raise FileNotFoundInDriveError(file.message_id)
        return self._require_storage().download(file.physical_id, file.user_id)
