"""Reconciliation import: register payloads the backend holds but the database does not.

Lists ``"{user_id}/"`` on the active backend and adds every object that no
active file references to the user's root folder, under a unique name and
with ``storage_type = "imported"``.
"""

import logging
import posixpath
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..core.token_factory import generate_logical_id, now_ms
from ..repositories.file_repository import FileRepository
from ..storage.base import StorageBackend
from .auth_service import ensure_root_folder
from .file_service import DEFAULT_MIMETYPE, FileService
from .naming import KIND_FILE, get_unique_name

logger = logging.getLogger(__name__)

IMPORTED_STORAGE_TYPE = "imported"


@dataclass
class ImportReport:
    found: int = 0
    imported: int = 0
    skipped: int = 0
    ignored: int = 0


def format_size(size: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"
        value /= 1024
    return f"{size} B"


def scan_storage_and_import(db: Session, storage: StorageBackend, user_id: int) -> ImportReport:
    """Import untracked payloads under the user's prefix into their root folder."""
    prefix = f"{user_id}/"
    logger.info("Scanning storage for untracked files", extra={"user_id": user_id, "backend": storage.name})
    remote_objects = storage.list(prefix)
    report = ImportReport(found=len(remote_objects))

    root = ensure_root_folder(db, user_id)
    known = FileRepository(db).active_physical_ids(user_id)
    files = FileService(db, storage)

    for remote in remote_objects:
        if remote.physical_id in known:
            report.skipped += 1
            continue
        base_name = posixpath.basename(remote.physical_id)
        if not base_name or base_name.startswith("."):
            report.ignored += 1
            continue

        name = get_unique_name(db, root.id, base_name, user_id, KIND_FILE)
        files.add_file(
            root.id, user_id, name, remote.size,
            physical_id=remote.physical_id,
            mimetype=DEFAULT_MIMETYPE,
            storage_type=IMPORTED_STORAGE_TYPE,
            message_id=generate_logical_id(),
            date=remote.updated_at or now_ms(),
            commit=False,
        )
        known.add(remote.physical_id)
        report.imported += 1
        logger.info("Imported %s (%s)", name, format_size(remote.size), extra={"user_id": user_id})

    db.commit()
    logger.info(
        "Storage scan finished",
        extra={"user_id": user_id, "imported": report.imported, "skipped": report.skipped},
    )
    return report
