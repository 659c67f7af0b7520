"""Pluggable payload storage backends."""

from .base import DownloadResult, RemoteObject, StorageBackend, UploadResult
from .factory import init_storage

__all__ = [
    "DownloadResult",
    "RemoteObject",
    "StorageBackend",
    "UploadResult",
    "init_storage",
]
