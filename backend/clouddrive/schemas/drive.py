"""Folder and file schemas.

Folder ids in every response and path parameter are opaque strings;
file ids are the logical ``message_id``.
"""

from typing import List, Optional

from pydantic import BaseModel


class FolderCreate(BaseModel):
    name: str
    parent_id: str


class RenameRequest(BaseModel):
    name: str


class FolderPasswordRequest(BaseModel):
    """Empty or missing password removes the lock."""
    password: Optional[str] = None


class VerifyPasswordRequest(BaseModel):
    password: str = ""


class FolderResponse(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None
    is_locked: bool = False
    share_token: Optional[str] = None
    share_expires_at: Optional[int] = None


class FileResponse(BaseModel):
    id: str
    name: str
    size: int
    mimetype: Optional[str] = None
    date: int
    folder_id: Optional[str] = None
    storage_type: Optional[str] = None
    share_token: Optional[str] = None
    share_expires_at: Optional[int] = None


class FolderContents(BaseModel):
    folder: FolderResponse
    folders: List[FolderResponse]
    files: List[FileResponse]


class SearchResults(BaseModel):
    folders: List[FolderResponse]
    files: List[FileResponse]


class ExistsResponse(BaseModel):
    exists: bool


class VerifyPasswordResponse(BaseModel):
    valid: bool


class UploadResponse(BaseModel):
    skipped: bool = False
    file: Optional[FileResponse] = None
