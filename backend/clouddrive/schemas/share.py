"""Share link schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .drive import FileResponse, FolderResponse

ItemType = Literal["file", "folder"]


class ShareCreate(BaseModel):
    item_id: str
    item_type: ItemType
    expires_in: str = Field(default="24h", description='"0", "1h", "24h", "7d" or "custom"')
    custom_expires_at: Optional[int] = Field(default=None, description="Epoch ms, with expires_in='custom'")
    password: Optional[str] = None


class ShareCancel(BaseModel):
    item_id: str
    item_type: ItemType


class ShareResponse(BaseModel):
    token: str
    expires_at: Optional[int] = None


class ActiveShare(BaseModel):
    id: str
    name: str
    type: ItemType
    token: str
    expires_at: Optional[int] = None
    has_password: bool = False


class PublicShareInfo(BaseModel):
    name: str
    type: ItemType
    size: Optional[int] = None
    mimetype: Optional[str] = None
    expires_at: Optional[int] = None
    requires_password: bool = False


class PublicFolderContents(BaseModel):
    folder: FolderResponse
    folders: List[FolderResponse]
    files: List[FileResponse]
