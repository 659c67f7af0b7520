"""Administration schemas."""

from typing import Any, Dict

from pydantic import BaseModel, Field


class UserQuotaResponse(BaseModel):
    id: int
    username: str
    is_admin: bool
    max_storage_bytes: int
    used_storage_bytes: int


class SetQuotaRequest(BaseModel):
    max_storage_bytes: int = Field(..., ge=0, description="0 means unlimited")


class ImportReportResponse(BaseModel):
    found: int
    imported: int
    skipped: int
    ignored: int


class StorageConfigDocument(BaseModel):
    """Raw configuration document; secrets are masked on the way out."""
    config: Dict[str, Any]
