"""Tree mutation and trash endpoints.

    POST   /api/items/trash    soft delete files and folder subtrees
    POST   /api/items/delete   permanent delete (payloads, then rows)
    POST   /api/items/move     move into a folder with a conflict mode
    POST   /api/items/merge    merge one folder into another
    POST   /api/items/restore  restore trashed items
    GET    /api/trash          top-level trash listing
    DELETE /api/trash          empty the trash
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.opaque_ids import OpaqueIdCodec
from ..database import get_db
from ..schemas.lifecycle import (
    ItemSelection,
    MergeRequest,
    MoveRequest,
    OperationResult,
    PurgeResult,
    RestoreRequest,
    SoftDeleteResult,
    TrashContents,
    TrashFileItem,
    TrashFolderItem,
)
from ..services.lifecycle_service import LifecycleService
from ..storage import StorageBackend
from .deps import decode_folder_id, decode_folder_ids, get_codec, get_optional_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/items", tags=["lifecycle"])
trash_router = APIRouter(prefix="/api/trash", tags=["lifecycle"])


@router.post("/trash", response_model=SoftDeleteResult)
def soft_delete(
    body: ItemSelection,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    return LifecycleService(db).soft_delete_items(
        body.file_ids, decode_folder_ids(codec, body.folder_ids), auth.user_id,
    )


@router.post("/delete", response_model=PurgeResult)
def permanent_delete(
    body: ItemSelection,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
    storage: Optional[StorageBackend] = Depends(get_optional_storage),
):
    """Rows are removed even when the backend cannot drop the payloads."""
    return LifecycleService(db, storage).unified_delete(
        body.file_ids, decode_folder_ids(codec, body.folder_ids), auth.user_id,
    )


@router.post("/move", response_model=OperationResult)
def move_items(
    body: MoveRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    return LifecycleService(db).move_items(
        body.file_ids,
        decode_folder_ids(codec, body.folder_ids),
        decode_folder_id(codec, body.target_folder_id),
        auth.user_id,
        conflict_mode=body.conflict_mode,
    )


@router.post("/merge", response_model=OperationResult)
def merge_folders(
    body: MergeRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    return LifecycleService(db).merge_folders(
        decode_folder_id(codec, body.source_folder_id),
        decode_folder_id(codec, body.target_folder_id),
        auth.user_id,
        conflict_mode=body.conflict_mode,
    )


@router.post("/restore", response_model=OperationResult)
def restore_items(
    body: RestoreRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    return LifecycleService(db).restore_items(
        body.file_ids, decode_folder_ids(codec, body.folder_ids), auth.user_id,
        conflict_mode=body.conflict_mode,
    )


@trash_router.get("", response_model=TrashContents)
def get_trash(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    contents = LifecycleService(db).get_trash_contents(auth.user_id)
    return TrashContents(
        folders=[
            TrashFolderItem(id=codec.encrypt(f.id), name=f.name, deleted_at=f.deleted_at)
            for f in contents["folders"]
        ],
        files=[
            TrashFileItem(id=f.message_id, name=f.file_name, size=f.size or 0, deleted_at=f.deleted_at)
            for f in contents["files"]
        ],
    )


@trash_router.delete("", response_model=PurgeResult)
def empty_trash(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    storage: Optional[StorageBackend] = Depends(get_optional_storage),
):
    return LifecycleService(db, storage).empty_trash(auth.user_id)
