"""Request/response schemas for tree mutations and the trash."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ConflictMode = Literal["overwrite", "rename", "skip"]


class ItemSelection(BaseModel):
    """Files by logical id and folders by opaque id."""
    file_ids: List[str] = Field(default_factory=list)
    folder_ids: List[str] = Field(default_factory=list)


class MoveRequest(ItemSelection):
    target_folder_id: str
    conflict_mode: ConflictMode = "rename"


class RestoreRequest(ItemSelection):
    conflict_mode: ConflictMode = "rename"


class MergeRequest(BaseModel):
    source_folder_id: str
    target_folder_id: str
    conflict_mode: ConflictMode = "overwrite"


class OperationResult(BaseModel):
    """Per-item outcome counts of a move, merge or restore."""
    success: bool = True
    processed: int = 0
    renamed: int = 0
    overwritten: int = 0
    merged: int = 0
    skipped: int = 0


class PurgeResult(BaseModel):
    success: bool = True
    deleted_files: int = 0
    deleted_folders: int = 0
    storage_cleanup_failed: bool = False


class SoftDeleteResult(BaseModel):
    success: bool = True
    trashed_files: int = 0
    trashed_folders: int = 0


class TrashFolderItem(BaseModel):
    id: str
    name: str
    type: Literal["folder"] = "folder"
    deleted_at: Optional[int] = None


class TrashFileItem(BaseModel):
    id: str
    name: str
    size: int
    type: Literal["file"] = "file"
    deleted_at: Optional[int] = None


class TrashContents(BaseModel):
    folders: List[TrashFolderItem]
    files: List[TrashFileItem]
