"""Share link management and public access.

Owner endpoints live under ``/api/shares``. Anonymous access by token
lives under ``/api/public/{token}``; a password-protected share expects
the password in the ``X-Share-Password`` header.
"""

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.opaque_ids import OpaqueIdCodec
from ..database import get_db
from ..exceptions import FolderNotFoundError, ForbiddenError, ShareNotFoundError, ValidationError
from ..models.file import StoredFile
from ..models.folder import Folder
from ..schemas.share import (
    ActiveShare,
    PublicFolderContents,
    PublicShareInfo,
    ShareCancel,
    ShareCreate,
    ShareResponse,
)
from ..services.archive_service import collect_archive_entries, stream_folder_archive
from ..services.file_service import FileService
from ..services.folder_service import FolderService
from ..services.share_service import ShareService
from ..services.tree_walker import is_descendant
from ..storage import StorageBackend
from .deps import content_disposition, decode_folder_id, file_out, folder_out, get_codec, get_storage
from .files import payload_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shares", tags=["shares"])
public_router = APIRouter(prefix="/api/public", tags=["shares"])


def _item_id(codec: OpaqueIdCodec, item_id: str, item_type: str) -> Union[int, str]:
    return decode_folder_id(codec, item_id) if item_type == "folder" else item_id


# -- Owner ----------------------------------------------------------------

@router.post("", response_model=ShareResponse, status_code=201)
def create_share(
    body: ShareCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    service = ShareService(db)
    item_id = _item_id(codec, body.item_id, body.item_type)
    token = service.create_share(
        item_id, body.item_type, body.expires_in, auth.user_id,
        password=body.password, custom_expires_at=body.custom_expires_at,
    )
    item = service.get_item(item_id, body.item_type, auth.user_id)
    return ShareResponse(token=token, expires_at=item.share_expires_at)


@router.post("/cancel", status_code=204)
def cancel_share(
    body: ShareCancel,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    ShareService(db).cancel_share(_item_id(codec, body.item_id, body.item_type), body.item_type, auth.user_id)


@router.get("", response_model=List[ActiveShare])
def list_shares(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    """Shares that are set and not yet expired."""
    shares = []
    for item in ShareService(db).get_active_shares(auth.user_id):
        if isinstance(item, Folder):
            shares.append(ActiveShare(
                id=codec.encrypt(item.id), name=item.name, type="folder", token=item.share_token,
                expires_at=item.share_expires_at, has_password=bool(item.share_password),
            ))
        else:
            shares.append(ActiveShare(
                id=item.message_id, name=item.file_name, type="file", token=item.share_token,
                expires_at=item.share_expires_at, has_password=bool(item.share_password),
            ))
    return shares


# -- Public ---------------------------------------------------------------

def _resolve_share(db: Session, token: str) -> Union[StoredFile, Folder]:
    service = ShareService(db)
    item = service.get_file_by_share_token(token) or service.get_folder_by_share_token(token)
    if item is None:
        raise ShareNotFoundError(token)
    return item


def _unlock(item: Union[StoredFile, Folder], password: Optional[str]) -> None:
    if not ShareService.verify_share_password(item, password):
        raise ForbiddenError("Share password required or incorrect")


def _shared_folder(db: Session, token: str, password: Optional[str]) -> Folder:
    item = _resolve_share(db, token)
    if not isinstance(item, Folder):
        raise ValidationError("This share link is for a file", field="token")
    _unlock(item, password)
    return item


@public_router.get("/{token}", response_model=PublicShareInfo)
def get_share_info(token: str, db: Session = Depends(get_db)):
    """What a token points at. Does not require the share password."""
    item = _resolve_share(db, token)
    if isinstance(item, Folder):
        return PublicShareInfo(
            name=item.name, type="folder", expires_at=item.share_expires_at,
            requires_password=bool(item.share_password),
        )
    return PublicShareInfo(
        name=item.file_name, type="file", size=item.size, mimetype=item.mimetype,
        expires_at=item.share_expires_at, requires_password=bool(item.share_password),
    )


@public_router.get("/{token}/download")
def download_shared_file(
    token: str,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    x_share_password: Optional[str] = Header(None),
):
    item = _resolve_share(db, token)
    if not isinstance(item, StoredFile):
        raise ValidationError("This share link is for a folder; download its archive instead", field="token")
    _unlock(item, x_share_password)
    payload = FileService(db, storage).open_payload(item)
    logger.info("Shared file downloaded", extra={"user_id": item.user_id})
    return payload_response(item.file_name, item.mimetype, payload)


@public_router.get("/{token}/contents", response_model=PublicFolderContents)
def get_shared_folder_contents(
    token: str,
    folder_id: Optional[str] = Query(None, description="Sub-folder inside the share; defaults to the shared folder"),
    db: Session = Depends(get_db),
    codec: OpaqueIdCodec = Depends(get_codec),
    x_share_password: Optional[str] = Header(None),
):
    shared = _shared_folder(db, token, x_share_password)
    target_id = shared.id
    if folder_id:
        target_id = decode_folder_id(codec, folder_id)
        if not is_descendant(db, shared.id, target_id, shared.user_id):
            raise FolderNotFoundError(folder_id)

    contents = FolderService(db).get_contents(target_id, shared.user_id)
    return PublicFolderContents(
        folder=folder_out(contents["folder"], codec, public=True),
        folders=[folder_out(f, codec, public=True) for f in contents["folders"]],
        files=[file_out(f, codec, public=True) for f in contents["files"]],
    )


@public_router.get("/{token}/archive")
def download_shared_folder(
    token: str,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    x_share_password: Optional[str] = Header(None),
):
    shared = _shared_folder(db, token, x_share_password)
    entries = collect_archive_entries(db, shared.id, shared.user_id)
    return StreamingResponse(
        stream_folder_archive(entries, storage),
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(f"{shared.name}.zip")},
    )
