"""Custom exception hierarchy for CloudDrive."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Tree errors
    FOLDER_NOT_FOUND = "FOLDER_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    NAME_CONFLICT = "NAME_CONFLICT"
    FOLDER_LOCKED = "FOLDER_LOCKED"
    SELF_CONTAINMENT = "SELF_CONTAINMENT"

    # Quota errors
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

    # Sharing errors
    SHARE_NOT_FOUND = "SHARE_NOT_FOUND"

    # User errors
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Storage backend errors
    STORAGE_BACKEND_ERROR = "STORAGE_BACKEND_ERROR"
    STORAGE_OBJECT_NOT_FOUND = "STORAGE_OBJECT_NOT_FOUND"
    STORAGE_NOT_CONFIGURED = "STORAGE_NOT_CONFIGURED"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Auth & rate limiting
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CloudDriveError(Exception):
    """
    Base exception for all CloudDrive errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class FolderNotFoundError(CloudDriveError):
    """Folder absent or not owned by the caller."""

    def __init__(self, folder_id):
        super().__init__(
            f"Folder not found: {folder_id}",
            ErrorCode.FOLDER_NOT_FOUND,
            status_code=404,
            details={"folder_id": folder_id}
        )


class FileNotFoundInDriveError(CloudDriveError):
    """File absent or not owned by the caller."""

    def __init__(self, file_id: str):
        super().__init__(
            f"File not found: {file_id}",
            ErrorCode.FILE_NOT_FOUND,
            status_code=404,
            details={"file_id": file_id}
        )


class UserNotFoundError(CloudDriveError):

    def __init__(self, user_id):
        super().__init__(
            f"User not found: {user_id}",
            ErrorCode.USER_NOT_FOUND,
            status_code=404,
            details={"user_id": user_id}
        )


class ShareNotFoundError(CloudDriveError):
    """Share token unknown or expired."""

    def __init__(self, token: str):
        super().__init__(
            "Share link not found or expired",
            ErrorCode.SHARE_NOT_FOUND,
            status_code=404,
            details={"token": token}
        )


class NameConflictError(CloudDriveError):
    """An active sibling already holds the requested name."""

    def __init__(self, name: str, parent_id=None):
        super().__init__(
            f"An item named '{name}' already exists",
            ErrorCode.NAME_CONFLICT,
            status_code=409,
            details={"name": name, "parent_id": parent_id}
        )


class LockedFolderError(CloudDriveError):
    """Deletion refused because a folder in scope is password protected."""

    def __init__(self, folder_name: str, permanent: bool = False):
        action = "permanently deleted" if permanent else "deleted"
        super().__init__(
            f"Folder '{folder_name}' is password protected and cannot be {action}. "
            "Remove the password first.",
            ErrorCode.FOLDER_LOCKED,
            status_code=423,
            details={"folder_name": folder_name}
        )


class SelfContainmentError(CloudDriveError):
    """Re-parenting a folder under itself or one of its descendants."""

    def __init__(self, folder_id, target_id):
        super().__init__(
            "Cannot move a folder into itself or one of its subfolders",
            ErrorCode.SELF_CONTAINMENT,
            status_code=400,
            details={"folder_id": folder_id, "target_id": target_id}
        )


class QuotaExceededError(CloudDriveError):
    """Incoming upload would exceed the user's storage ceiling."""

    def __init__(self, used: int, incoming: int, maximum: int):
        super().__init__(
            "Storage quota exceeded",
            ErrorCode.QUOTA_EXCEEDED,
            status_code=413,
            details={"used": used, "incoming": incoming, "max": maximum}
        )


class StorageBackendError(CloudDriveError):
    """Payload upload/download failed on the storage backend."""

    def __init__(self, message: str, backend: Optional[str] = None):
        details = {"backend": backend} if backend else {}
        super().__init__(
            message,
            ErrorCode.STORAGE_BACKEND_ERROR,
            status_code=502,
            details=details
        )


class StorageObjectNotFoundError(StorageBackendError):
    """The backend has no payload under the requested physical id."""

    def __init__(self, physical_id: str, backend: Optional[str] = None):
        super().__init__(f"Object not found in storage: {physical_id}", backend)
        self.error_code = ErrorCode.STORAGE_OBJECT_NOT_FOUND
        self.status_code = 404
        self.details["physical_id"] = physical_id


class StorageConfigurationError(CloudDriveError):
    """Storage mode missing or its credentials incomplete."""

    def __init__(self, message: str):
        super().__init__(
            message,
            ErrorCode.STORAGE_NOT_CONFIGURED,
            status_code=503,
        )


class ValidationError(CloudDriveError):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class AuthenticationError(CloudDriveError):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ForbiddenError(CloudDriveError):
    """Authenticated user lacks permission for the requested action."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message,
            ErrorCode.FORBIDDEN,
            status_code=403,
        )
