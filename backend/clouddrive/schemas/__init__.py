"""Pydantic schemas for API validation."""

from .lifecycle import (
    ConflictMode,
    ItemSelection,
    MergeRequest,
    MoveRequest,
    OperationResult,
    PurgeResult,
    RestoreRequest,
    SoftDeleteResult,
    TrashContents,
)

__all__ = [
    "ConflictMode",
    "ItemSelection",
    "MergeRequest",
    "MoveRequest",
    "OperationResult",
    "PurgeResult",
    "RestoreRequest",
    "SoftDeleteResult",
    "TrashContents",
]
