"""Folder API: browsing, creation, renaming, locks, search and archive download."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.opaque_ids import OpaqueIdCodec
from ..database import get_db
from ..schemas.drive import (
    FolderContents,
    FolderCreate,
    FolderPasswordRequest,
    FolderResponse,
    RenameRequest,
    SearchResults,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
)
from ..services.archive_service import collect_archive_entries, stream_folder_archive
from ..services.folder_service import FolderService
from ..services.lifecycle_service import LifecycleService
from ..services.share_service import ShareService
from ..storage import StorageBackend
from .deps import content_disposition, decode_folder_id, file_out, folder_out, get_codec, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/folders", tags=["folders"])


# -- Listing --------------------------------------------------------------

@router.get("/root", response_model=FolderContents)
def get_root_contents(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    service = FolderService(db)
    root = service.get_root(auth.user_id)
    return _contents_out(service, root.id, auth.user_id, codec)


@router.get("/all", response_model=List[FolderResponse])
def list_all_folders(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    """Every active folder of the user, for move and merge target pickers."""
    return [folder_out(f, codec) for f in FolderService(db).list_all(auth.user_id)]


@router.get("/search", response_model=SearchResults)
def search(
    q: str = Query("", max_length=255),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    hits = FolderService(db).search(q, auth.user_id)
    return SearchResults(
        folders=[folder_out(f, codec) for f in hits["folders"]],
        files=[file_out(f, codec) for f in hits["files"]],
    )


@router.get("/{folder_id}", response_model=FolderContents)
def get_contents(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    return _contents_out(FolderService(db), decode_folder_id(codec, folder_id), auth.user_id, codec)


@router.get("/{folder_id}/path", response_model=List[FolderResponse])
def get_path(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    """Breadcrumbs, root first."""
    chain = FolderService(db).get_path(decode_folder_id(codec, folder_id), auth.user_id)
    return [folder_out(f, codec) for f in chain]


# -- Mutations ------------------------------------------------------------

@router.post("", response_model=FolderResponse, status_code=201)
def create_folder(
    body: FolderCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    parent_id = decode_folder_id(codec, body.parent_id)
    folder = LifecycleService(db).create_folder(body.name, parent_id, auth.user_id)
    return folder_out(folder, codec)


@router.put("/{folder_id}/name", response_model=FolderResponse)
def rename_folder(
    folder_id: str,
    body: RenameRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    folder = LifecycleService(db).rename_folder(decode_folder_id(codec, folder_id), body.name, auth.user_id)
    return folder_out(folder, codec)


@router.put("/{folder_id}/password", response_model=FolderResponse)
def set_password(
    folder_id: str,
    body: FolderPasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    """Lock the folder with a password, or unlock it with an empty one."""
    folder = ShareService(db).set_folder_password(decode_folder_id(codec, folder_id), body.password, auth.user_id)
    return folder_out(folder, codec)


@router.post("/{folder_id}/verify-password", response_model=VerifyPasswordResponse)
def verify_password(
    folder_id: str,
    body: VerifyPasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    valid = ShareService(db).verify_folder_password(decode_folder_id(codec, folder_id), body.password, auth.user_id)
    return VerifyPasswordResponse(valid=valid)


# -- Archive --------------------------------------------------------------

@router.get("/{folder_id}/download")
def download_folder(
    folder_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
    storage: StorageBackend = Depends(get_storage),
):
    """Stream the folder's active subtree as a ZIP archive."""
    folder = FolderService(db).get_active_folder(decode_folder_id(codec, folder_id), auth.user_id)
    entries = collect_archive_entries(db, folder.id, auth.user_id)
    logger.info("Folder archive requested", extra={"user_id": auth.user_id, "files": len(entries)})
    return StreamingResponse(
        stream_folder_archive(entries, storage),
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(f"{folder.name}.zip")},
    )


def _contents_out(service: FolderService, folder_id: int, user_id: int, codec: OpaqueIdCodec) -> FolderContents:
    contents = service.get_contents(folder_id, user_id)
    return FolderContents(
        folder=folder_out(contents["folder"], codec),
        folders=[folder_out(f, codec) for f in contents["folders"]],
        files=[file_out(f, codec) for f in contents["files"]],
    )
