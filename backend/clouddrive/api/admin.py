"""Administration endpoints (admin only).

    GET    /api/admin/users                  users with quota usage
    PUT    /api/admin/users/{user_id}/quota  set a storage ceiling
    DELETE /api/admin/users/{user_id}        delete a non-admin user
    GET    /api/admin/storage-config         configuration, secrets masked
    PUT    /api/admin/storage-config         merge and persist configuration
    POST   /api/admin/import                 register untracked backend payloads
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_admin
from ..core.storage_config import STORAGE_MODES, StorageConfigStore, drop_masked, mask_secrets
from ..database import get_db
from ..exceptions import UserNotFoundError, ValidationError
from ..schemas.admin import ImportReportResponse, SetQuotaRequest, StorageConfigDocument, UserQuotaResponse
from ..services import auth_service
from ..services.import_service import scan_storage_and_import
from ..services.quota_service import QuotaService
from ..storage import StorageBackend
from .deps import get_config_store, get_optional_storage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=List[UserQuotaResponse])
def list_users(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return QuotaService(db).list_users_with_quota()


@router.put("/users/{user_id}/quota", status_code=204)
def set_quota(
    user_id: int,
    body: SetQuotaRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    QuotaService(db).set_max_storage(user_id, body.max_storage_bytes)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: Optional[StorageBackend] = Depends(get_optional_storage),
):
    auth_service.delete_user(db, user_id, storage)
    logger.info("User deleted by admin", extra={"admin_id": auth.user_id, "user_id": user_id})


@router.get("/storage-config", response_model=StorageConfigDocument)
def get_storage_config(
    auth: AuthContext = Depends(require_admin),
    store: StorageConfigStore = Depends(get_config_store),
):
    return StorageConfigDocument(config=mask_secrets(store.load()))


@router.put("/storage-config", response_model=StorageConfigDocument)
def save_storage_config(
    update: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(require_admin),
    store: StorageConfigStore = Depends(get_config_store),
):
    """Merge *update* into the stored document. Masked secrets keep their stored value."""
    mode = update.get("storageMode")
    if mode is not None and mode not in STORAGE_MODES:
        raise ValidationError(f"storageMode must be one of {', '.join(STORAGE_MODES)}", field="storageMode")
    saved = store.save(drop_masked(update))
    return StorageConfigDocument(config=mask_secrets(saved))


@router.post("/import", response_model=ImportReportResponse)
def import_untracked(
    user_id: Optional[int] = Query(None, description="Account to import into; defaults to the caller"),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    target = user_id if user_id is not None else auth.user_id
    if auth_service.get_user_by_id(db, target) is None:
        raise UserNotFoundError(target)
    report = scan_storage_and_import(db, storage, target)
    return ImportReportResponse(
        found=report.found, imported=report.imported, skipped=report.skipped, ignored=report.ignored,
    )
