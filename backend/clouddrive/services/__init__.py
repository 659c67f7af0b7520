"""Business logic services."""

from .file_service import FileService
from .folder_service import FolderService
from .lifecycle_service import LifecycleService
from .quota_service import QuotaService
from .share_service import ShareService

__all__ = ["FileService", "FolderService", "LifecycleService", "QuotaService", "ShareService"]
