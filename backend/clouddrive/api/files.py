"""File API: upload, download, rename and existence checks."""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.opaque_ids import OpaqueIdCodec
from ..database import get_db
from ..schemas.drive import ExistsResponse, FileResponse, RenameRequest, UploadResponse
from ..schemas.lifecycle import ConflictMode
from ..services.file_service import FileService
from ..services.lifecycle_service import LifecycleService
from ..storage import StorageBackend
from ..storage.base import DownloadResult
from .deps import content_disposition, decode_folder_id, file_out, get_codec, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/upload", response_model=UploadResponse, status_code=201)
def upload_file(
    folder_id: str = Form(...),
    conflict_mode: ConflictMode = Form("rename"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
    storage: StorageBackend = Depends(get_storage),
):
    """Store an uploaded file in a folder.

    The quota is checked against the declared size before the payload is
    sent to the backend.
    """
    target = decode_folder_id(codec, folder_id)
    size = file.size
    if size is None:
        file.file.seek(0, 2)
        size = file.file.tell()
        file.file.seek(0)

    row = FileService(db, storage).upload_file(
        target, auth.user_id, file.file, file.filename or "untitled", size,
        content_type=file.content_type, conflict_mode=conflict_mode,
    )
    if row is None:
        return UploadResponse(skipped=True)
    return UploadResponse(file=file_out(row, codec))


@router.get("/exists", response_model=ExistsResponse)
def file_exists(
    folder_id: str = Query(...),
    name: str = Query(...),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    """Lets clients ask for a conflict mode before uploading."""
    exists = FileService(db).check_exists(decode_folder_id(codec, folder_id), name, auth.user_id)
    return ExistsResponse(exists=exists)


@router.get("/{file_id}/download")
def download_file(
    file_id: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    storage: StorageBackend = Depends(get_storage),
):
    file, payload = FileService(db, storage).open_download(file_id, auth.user_id)
    return payload_response(file.file_name, file.mimetype, payload)


@router.put("/{file_id}/name", response_model=FileResponse)
def rename_file(
    file_id: str,
    body: RenameRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
    codec: OpaqueIdCodec = Depends(get_codec),
):
    file = LifecycleService(db).rename_file(file_id, body.name, auth.user_id)
    return file_out(file, codec)


def payload_response(file_name: str, mimetype: str, payload: DownloadResult) -> StreamingResponse:
    headers = {"Content-Disposition": content_disposition(file_name)}
    if payload.content_length is not None:
        headers["Content-Length"] = str(payload.content_length)
    if payload.etag:
        headers["ETag"] = payload.etag
    return StreamingResponse(
        payload.stream,
        media_type=mimetype or payload.content_type,
        headers=headers,
    )
