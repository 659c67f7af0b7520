"""Data access repositories."""

from .base import BaseRepository
from .folder_repository import FolderRepository, ROOT_FOLDER_NAME
from .file_repository import FileRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "FolderRepository",
    "ROOT_FOLDER_NAME",
    "FileRepository",
    "UserRepository",
]
