"""API routes."""

from .admin import router as admin_router
from .auth_routes import router as auth_router
from .files import router as files_router
from .folders import router as folders_router
from .lifecycle import router as items_router, trash_router
from .shares import public_router, router as shares_router

__all__ = [
    "admin_router",
    "auth_router",
    "files_router",
    "folders_router",
    "items_router",
    "trash_router",
    "shares_router",
    "public_router",
]
