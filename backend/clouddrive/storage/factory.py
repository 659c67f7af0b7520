"""Build the storage backend selected by the configuration document."""

import logging

from ..core.config import settings
from ..core.storage_config import StorageConfig
from ..exceptions import StorageConfigurationError
from .base import StorageBackend

logger = logging.getLogger(__name__)


def init_storage(config: StorageConfig) -> StorageBackend:
    """Return a backend instance for ``config.storage_mode``.

    Raises:
        StorageConfigurationError: If no mode is selected or it is unknown.
    """
    mode = (config.storage_mode or "").lower()
    if not mode:
        raise StorageConfigurationError(
            "Storage mode is not configured. An administrator must select s3, webdav or telegram."
        )

    if mode == "s3":
        from .s3 import S3Storage
        backend: StorageBackend = S3Storage(config.s3)
    elif mode == "webdav":
        from .webdav import WebDAVStorage
        backend = WebDAVStorage(
            config.webdav,
            batch_size=settings.removal_batch_size,
            timeout=settings.storage_timeout,
        )
    elif mode == "telegram":
        from .telegram import TelegramStorage
        backend = TelegramStorage(config.telegram, timeout=settings.storage_timeout)
    else:
        raise StorageConfigurationError(f"Unknown storage mode: {mode}")

    logger.debug("Storage backend initialised", extra={"storage_mode": mode})
    return backend
