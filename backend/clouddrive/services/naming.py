"""Sibling-unique naming.

``get_unique_name`` returns the desired name when no active sibling holds
it, otherwise the first free ``"{stem} ({n}){ext}"`` for n = 1, 2, ...
Only active rows count; trashed namesakes never block a name.
"""

from typing import Tuple

from sqlalchemy.orm import Session

from ..exceptions import ValidationError
from ..models.file import StoredFile
from ..models.folder import Folder

KIND_FILE = "file"
KIND_FOLDER = "folder"
MAX_NAME_LENGTH = 255


def split_name(name: str, kind: str = KIND_FILE) -> Tuple[str, str]:
    """Split into (stem, extension).

    Folders are all stem. For files the extension starts at the last dot,
    unless that dot is the first character (``.env`` has no extension).
    """
    if kind != KIND_FILE:
        return name, ""
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]


def validate_name(name: str, field: str = "name") -> str:
    """Strip and check a user-supplied file or folder name."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Name must not be empty", field=field)
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name exceeds {MAX_NAME_LENGTH} characters", field=field)
    if "/" in cleaned or "\\" in cleaned or cleaned in (".", ".."):
        raise ValidationError("Name contains a path separator or is reserved", field=field)
    return cleaned


def _is_taken(db: Session, folder_id: int, name: str, user_id: int, kind: str) -> bool:
    if kind == KIND_FILE:
        query = db.query(StoredFile.message_id).filter(
            StoredFile.folder_id == folder_id,
            StoredFile.file_name == name,
        )
        model = StoredFile
    else:
        query = db.query(Folder.id).filter(
            Folder.parent_id == folder_id,
            Folder.name == name,
        )
        model = Folder
    return query.filter(model.user_id == user_id, model.is_deleted == 0).first() is not None


def get_unique_name(db: Session, folder_id: int, desired: str, user_id: int, kind: str = KIND_FILE) -> str:
    """Return *desired* or the first numbered variant free among active siblings.

    Pending changes must be flushed first; the probe queries the database.
    """
    if not _is_taken(db, folder_id, desired, user_id, kind):
        return desired

    stem, ext = split_name(desired, kind)
    n = 1
    while True:
        candidate = f"{stem} ({n}){ext}"
        if not _is_taken(db, folder_id, candidate, user_id, kind):
            return candidate
        n += 1
