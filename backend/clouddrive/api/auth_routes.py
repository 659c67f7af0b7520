"""Authentication and account endpoints.

    POST /api/auth/register  create an account (the first one is admin)
    POST /api/auth/login     exchange credentials for a session token
    POST /api/auth/logout    revoke the presented token
    GET  /api/auth/me        current user with quota usage
    PUT  /api/auth/password  change password, revoking other sessions
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.config import settings
from ..database import get_db
from ..exceptions import AuthenticationError
from ..models.user import User
from ..schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserResponse,
)
from ..services import auth_service
from ..services.quota_service import QuotaService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _user_out(user: User, used: int = None) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        is_admin=bool(user.is_admin),
        max_storage_bytes=user.effective_max_storage,
        used_storage_bytes=used,
    )


@router.post("/register", response_model=UserResponse, status_code=201, summary="Register a new user")
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = auth_service.register_user(db, body.username, body.password)
    return _user_out(user, used=0)


@router.post("/login", response_model=LoginResponse, summary="Authenticate and receive a session token")
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, body.username, body.password)
    token, expires_at = auth_service.create_session(db, user, settings.session_ttl_hours)
    logger.info("User logged in", extra={"user_id": user.id})
    return LoginResponse(token=token, expires_at=expires_at, user=_user_out(user))


@router.post("/logout", status_code=204)
def logout(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db)):
    auth_service.revoke_session(db, auth.token)


@router.get("/me", response_model=UserResponse, summary="Current user and quota usage")
def get_me(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db)):
    user = auth_service.get_user_by_id(db, auth.user_id)
    if user is None:
        raise AuthenticationError("User not found")
    quota = QuotaService(db).get_user_quota(auth.user_id)
    return _user_out(user, used=quota.used)


@router.put("/password", status_code=204)
def change_password(
    body: ChangePasswordRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, auth.user_id, body.old_password, body.new_password, current_token=auth.token)
