"""Shared route dependencies and response serialisers.

Folder ids leave and enter the API only in their opaque form; everything
below the routers works with integer ids.
"""

import logging
from typing import List, Optional
from urllib.parse import quote

from fastapi import Request

from ..core.opaque_ids import OpaqueIdCodec
from ..core.storage_config import StorageConfigStore
from ..exceptions import FolderNotFoundError, StorageConfigurationError
from ..models.file import StoredFile
from ..models.folder import Folder
from ..schemas.drive import FileResponse, FolderResponse
from ..storage import StorageBackend, init_storage

logger = logging.getLogger(__name__)


def get_config_store(request: Request) -> StorageConfigStore:
    return request.app.state.storage_config_store


def get_codec(request: Request) -> OpaqueIdCodec:
    return request.app.state.id_codec


def get_storage(request: Request) -> StorageBackend:
    """Backend for the configured storage mode.

    Raises:
        StorageConfigurationError: When no usable mode is configured.
    """
    return init_storage(get_config_store(request).get())


def get_optional_storage(request: Request) -> Optional[StorageBackend]:
    """Like ``get_storage`` but None when unconfigured, for purges that may skip payloads."""
    try:
        return get_storage(request)
    except StorageConfigurationError as e:
        logger.info("Continuing without storage backend: %s", e.message)
        return None


def decode_folder_id(codec: OpaqueIdCodec, token: str) -> int:
    """Opaque id to integer; unreadable ids are reported as a missing folder."""
    folder_id = codec.decrypt_int(token)
    if folder_id is None:
        raise FolderNotFoundError(token)
    return folder_id


def decode_folder_ids(codec: OpaqueIdCodec, tokens: List[str]) -> List[int]:
    return [decode_folder_id(codec, t) for t in tokens]


def folder_out(folder: Folder, codec: OpaqueIdCodec, public: bool = False) -> FolderResponse:
    return FolderResponse(
        id=codec.encrypt(folder.id),
        name=folder.name,
        parent_id=codec.encrypt(folder.parent_id),
        is_locked=folder.is_locked,
        share_token=None if public else folder.share_token,
        share_expires_at=None if public else folder.share_expires_at,
    )


def file_out(file: StoredFile, codec: OpaqueIdCodec, public: bool = False) -> FileResponse:
    return FileResponse(
        id=file.message_id,
        name=file.file_name,
        size=file.size or 0,
        mimetype=file.mimetype,
        date=file.date,
        folder_id=codec.encrypt(file.folder_id),
        storage_type=None if public else file.storage_type,
        share_token=None if public else file.share_token,
        share_expires_at=None if public else file.share_expires_at,
    )


def content_disposition(file_name: str) -> str:
    """Attachment header that survives non-ASCII names."""
    fallback = file_name.encode("ascii", "replace").decode().replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name)}"
