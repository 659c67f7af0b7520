"""Authentication module exposing FastAPI dependencies.

Public interface:
    ``require_auth``  returns AuthContext or raises 401.
    ``require_admin`` returns AuthContext, raises 403 if not admin.

Tokens are opaque session ids issued at login and looked up in
``auth_tokens``. They arrive as ``Authorization: Bearer <token>``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import AuthenticationError, ForbiddenError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Resolved identity available to every endpoint.

    Every service call made on the user's behalf is scoped by ``user_id``.
    """

    user_id: int
    username: str
    is_admin: bool = False
    token: Optional[str] = None


def get_bearer_scheme() -> HTTPBearer:
    """Expose the security scheme so OpenAPI picks it up."""
    return _bearer_scheme


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Require a valid session token and return the user's AuthContext."""
    from ..services.auth_service import resolve_session

    if credentials is None:
        raise AuthenticationError("Missing authentication token")

    user = resolve_session(db, credentials.credentials)
    if user is None:
        raise AuthenticationError("Invalid or expired token")

    return AuthContext(
        user_id=user.id,
        username=user.username,
        is_admin=bool(user.is_admin),
        token=credentials.credentials,
    )


def require_admin(
    auth: AuthContext = Depends(require_auth),
) -> AuthContext:
    """Require the authenticated user to be an admin. Raises 403 otherwise."""
    if not auth.is_admin:
        raise ForbiddenError("Admin access required")
    return auth
