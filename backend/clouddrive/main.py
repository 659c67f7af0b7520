"""Main FastAPI application."""

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import __version__
from .api import (
    admin_router,
    auth_router,
    files_router,
    folders_router,
    items_router,
    public_router,
    shares_router,
    trash_router,
)
from .core.config import DEFAULT_SECRET_KEY, ConfigurationError, Environment, settings
from .core.logging_config import setup_logging
from .core.opaque_ids import OpaqueIdCodec
from .core.storage_config import StorageConfigStore
from .core.token_factory import now_ms
from .database import DATABASE_URL, SessionLocal, get_db, init_db
from .exceptions import CloudDriveError
from .middleware.exception_handler import clouddrive_exception_handler
from .middleware.request_context import RequestContextMiddleware
from .repositories.user_repository import UserRepository

setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)


def _mask_url(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://\1:***@', url)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the CloudDrive API."""
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT and settings.secret_key == DEFAULT_SECRET_KEY:
        logger.warning(
            "SECURITY: SECRET_KEY is the default; opaque folder ids are predictable. "
            "Generate a secure key: openssl rand -hex 32"
        )

    logger.info(f"Connecting to database: {_mask_url(DATABASE_URL)}")
    try:
        init_db()
    except SQLAlchemyError as e:
        logger.critical(f"Database initialisation failed: {e}")
        raise SystemExit(1) from e

    db = SessionLocal()
    try:
        purged = UserRepository(db).delete_expired_tokens(now_ms())
        db.commit()
        if purged:
            logger.info(f"Removed {purged} expired session tokens")
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Session token cleanup failed (non-fatal): {e}")
    finally:
        db.close()

    storage_mode = app.state.storage_config_store.get().storage_mode
    if not storage_mode:
        logger.warning("No storage mode configured; uploads and downloads will fail until an admin sets one")

    yield


app = FastAPI(
    title="CloudDrive API",
    description=(
        "Multi-tenant virtual filesystem: folders and files with soft delete, restore, "
        "move and merge with conflict modes, quotas, share links and password locks. "
        "File payloads live on an S3, WebDAV or Telegram storage backend.\n\n"
        "**Authentication:** `POST /api/auth/login` returns a session token; send it as "
        "`Authorization: Bearer <token>`. Only `/api/public/*` is anonymous."
    ),
    version=__version__,
    lifespan=lifespan,
)

app.state.storage_config_store = StorageConfigStore(settings.storage_config_path)
app.state.id_codec = OpaqueIdCodec(settings.secret_key)

# Middleware stack (outermost first: CORS wraps request context).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Share-Password", "X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(CloudDriveError, clouddrive_exception_handler)

app.include_router(auth_router)
app.include_router(folders_router)
app.include_router(files_router)
app.include_router(items_router)
app.include_router(trash_router)
app.include_router(shares_router)
app.include_router(public_router)
app.include_router(admin_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "CloudDrive API",
        "version": __version__,
        "status": "running"
    }


_startup_time = time.monotonic()


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Database status, uptime and storage mode.

    Never raises: a database failure reports ``degraded`` so load balancers
    can still probe without receiving 5xx.
    """
    db_status = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database", exc_info=True)
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "storage_mode": app.state.storage_config_store.get().storage_mode or None,
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": __version__,
    }
