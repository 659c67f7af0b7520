"""Storage backend configuration document and its process-scoped cache.

The document is a single JSON object::

    {"storageMode": "s3" | "webdav" | "telegram",
     "s3": {...}, "webdav": {...}, "telegram": {...}}

``StorageConfigStore`` is created once at startup and kept on
``app.state``. It caches the parsed document with no expiry; ``save()``
replaces the cache and ``invalidate()`` drops it so the next ``load()``
re-reads the file.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

STORAGE_MODES = ("s3", "webdav", "telegram")
_SECTIONS = STORAGE_MODES


class S3Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    endpoint: Optional[str] = None
    bucket_name: Optional[str] = Field(default=None, alias="bucketName")
    access_key_id: Optional[str] = Field(default=None, alias="accessKeyId")
    secret_access_key: Optional[str] = Field(default=None, alias="secretAccessKey")
    region: str = "auto"
    public_url: Optional[str] = Field(default=None, alias="publicUrl")


class WebDAVSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    endpoint: Optional[str] = None
    username: str = ""
    password: str = ""


class TelegramSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bot_token: Optional[str] = Field(default=None, alias="botToken")
    chat_id: Optional[str] = Field(default=None, alias="chatId")


class StorageConfig(BaseModel):
    """Validated view of the storage configuration document."""
    model_config = ConfigDict(populate_by_name=True)

    storage_mode: str = Field(default="", alias="storageMode")
    s3: S3Settings = Field(default_factory=S3Settings)
    webdav: WebDAVSettings = Field(default_factory=WebDAVSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)


def _empty_document() -> Dict[str, Any]:
    # Blank until an administrator selects a mode.
    return {"storageMode": "", "s3": {}, "webdav": {}, "telegram": {}}


def merge_config(current: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow-merge top-level keys, one level deeper for backend sections."""
    merged = {**current, **update}
    for section in _SECTIONS:
        merged[section] = {**(current.get(section) or {}), **(update.get(section) or {})}
    return merged


SECRET_FIELDS = {"s3": ("secretAccessKey",), "webdav": ("password",), "telegram": ("botToken",)}
MASK = "********"


def mask_secrets(document: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of *document* with credential values replaced by ``MASK``."""
    masked = dict(document)
    for section, fields in SECRET_FIELDS.items():
        values = dict(masked.get(section) or {})
        for field in fields:
            if values.get(field):
                values[field] = MASK
        masked[section] = values
    return masked


def drop_masked(update: Dict[str, Any]) -> Dict[str, Any]:
    """Remove credentials echoed back as ``MASK`` so saving keeps the stored value."""
    cleaned = dict(update)
    for section, fields in SECRET_FIELDS.items():
        if not isinstance(cleaned.get(section), dict):
            continue
        cleaned[section] = {k: v for k, v in cleaned[section].items() if not (k in fields and v == MASK)}
    return cleaned


class StorageConfigStore:
    """File-backed configuration document with an in-memory cache."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._cache: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Any]:
        with self._lock:
            if self._cache is not None:
                return self._cache
            self._cache = self._read()
            return self._cache

    def get(self) -> StorageConfig:
        return StorageConfig.model_validate(self.load())

    def save(self, update: Dict[str, Any]) -> Dict[str, Any]:
        """Merge *update* into the stored document, persist it and refresh the cache."""
        current = self.load()
        updated = merge_config(current, update)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(updated, indent=2))
            self._cache = updated
        logger.info(
            "Storage configuration saved",
            extra={"storage_mode": updated.get("storageMode") or ""},
        )
        return updated

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _empty_document()
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            # Cached as empty so a corrupt file does not trigger a re-read per request.
            logger.error("Storage configuration is not valid JSON: %s", e)
            return {}
        return data if isinstance(data, dict) else {}
