"""Streaming ZIP download of a folder subtree."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from stat import S_IFREG
from typing import Iterator, List

from sqlalchemy.orm import Session
from stream_zip import ZIP_64, stream_zip

from ..core.token_factory import now_ms
from ..exceptions import StorageBackendError
from ..models.file import StoredFile
from ..repositories.file_repository import FileRepository
from ..storage.base import StorageBackend
from .tree_walker import iter_active_subtree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    file: StoredFile
    zip_path: str


def collect_archive_entries(db: Session, folder_id: int, user_id: int) -> List[ArchiveEntry]:
    """Every active file beneath *folder_id* with its path relative to that folder."""
    files = FileRepository(db)
    entries: List[ArchiveEntry] = []
    for folder, rel_path in iter_active_subtree(db, folder_id, user_id):
        for file in files.list_in_folder(folder.id, user_id):
            zip_path = f"{rel_path}/{file.file_name}" if rel_path else file.file_name
            entries.append(ArchiveEntry(file=file, zip_path=zip_path))
    return entries


def _member_files(entries: List[ArchiveEntry], storage: StorageBackend):
    for entry in entries:
        file = entry.file
        try:
            payload = storage.download(file.physical_id, file.user_id)
        except StorageBackendError as e:
            logger.warning("Skipping %s in archive: %s", entry.zip_path, e.message)
            continue
        modified_at = datetime.fromtimestamp((file.date or now_ms()) / 1000, tz=timezone.utc)
        yield entry.zip_path, modified_at, S_IFREG | 0o644, ZIP_64, payload.stream


def stream_folder_archive(entries: List[ArchiveEntry], storage: StorageBackend) -> Iterator[bytes]:
    """ZIP bytes for *entries*; unreadable payloads are left out and logged.

    Entries must be collected up front: the generator runs after the
    request's database session has closed.
    """
    return stream_zip(_member_files(entries, storage))
