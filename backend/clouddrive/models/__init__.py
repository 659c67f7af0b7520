"""Database models."""

from .user import User, AuthToken, DEFAULT_MAX_STORAGE_BYTES
from .folder import Folder
from .file import StoredFile

__all__ = [
    "User", "AuthToken", "DEFAULT_MAX_STORAGE_BYTES",
    "Folder", "StoredFile",
]
