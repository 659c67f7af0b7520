"""Authentication service: user CRUD, password hashing, session tokens.

All password operations use bcrypt via passlib. Passwords are never stored
or logged in plaintext. Sessions are opaque random tokens kept in
``auth_tokens``; expired tokens are removed when they are presented.
"""

import logging
from typing import List, Optional, Tuple

from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from ..core.token_factory import generate_session_token, now_ms, session_expiry_ms
from ..exceptions import AuthenticationError, UserNotFoundError, ValidationError
from ..models.file import StoredFile
from ..models.folder import Folder
from ..models.user import DEFAULT_MAX_STORAGE_BYTES, User
from ..repositories.folder_repository import ROOT_FOLDER_NAME, FolderRepository
from ..repositories.user_repository import UserRepository
from ..storage.base import StorageBackend

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_USERNAME_LENGTH = 64


def _validate_password(password: str, field: str = "password") -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field=field)


def register_user(db: Session, username: str, password: str) -> User:
    """Create a new account with the default quota and its root folder.

    The first user registered becomes admin.

    Raises ValidationError if the username is taken or inputs are invalid.
    """
    username = (username or "").strip()
    if not username or len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError("Username required (max 64 characters)", field="username")
    _validate_password(password)

    users = UserRepository(db)
    if users.get_by_username(username) is not None:
        raise ValidationError("Username already registered", field="username")

    is_first_user = users.count() == 0
    user = users.create(
        username=username,
        password_hash=bcrypt.hash(password),
        is_admin=is_first_user,
        max_storage_bytes=DEFAULT_MAX_STORAGE_BYTES,
    )
    ensure_root_folder(db, user.id)
    db.commit()
    db.refresh(user)

    if is_first_user:
        logger.info("First user registered as admin: %s", username)
    else:
        logger.info("User registered: %s", username)
    return user


def authenticate(db: Session, username: str, password: str) -> User:
    """Validate credentials and return the user.

    Raises AuthenticationError on unknown username or wrong password.
    """
    user = UserRepository(db).get_by_username((username or "").strip())
    if user is None or not bcrypt.verify(password or "", user.password_hash):
        raise AuthenticationError("Invalid username or password")
    return user


def create_session(db: Session, user: User, ttl_hours: int) -> Tuple[str, int]:
    """Issue a session token and make sure the user's root folder exists."""
    token = generate_session_token()
    expires_at = session_expiry_ms(ttl_hours)
    UserRepository(db).add_token(user.id, token, expires_at)
    ensure_root_folder(db, user.id)
    db.commit()
    return token, expires_at


def resolve_session(db: Session, token: str) -> Optional[User]:
    """Return the token's user, or None when the token is unknown or expired."""
    if not token:
        return None
    users = UserRepository(db)
    row = users.find_token(token)
    if row is None:
        return None
    if row.expires_at <= now_ms():
        users.delete_token(token)
        db.commit()
        return None
    return users.get(row.user_id)


def revoke_session(db: Session, token: str) -> None:
    UserRepository(db).delete_token(token)
    db.commit()


def ensure_root_folder(db: Session, user_id: int) -> Folder:
    """Return the user's root folder, creating it on first use."""
    folders = FolderRepository(db)
    root = folders.get_root(user_id)
    if root is None:
        root = folders.create(ROOT_FOLDER_NAME, None, user_id)
        logger.info("Root folder created", extra={"user_id": user_id})
    return root


def change_password(db: Session, user_id: int, old_password: str, new_password: str,
                    current_token: Optional[str] = None) -> None:
    """Replace the password and revoke every other session of the user."""
    users = UserRepository(db)
    user = users.get(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    if not bcrypt.verify(old_password or "", user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    _validate_password(new_password, field="new_password")

    user.password_hash = bcrypt.hash(new_password)
    users.delete_tokens_for_user(user_id, keep=current_token)
    db.commit()
    logger.info("Password changed", extra={"user_id": user_id})


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return UserRepository(db).get(user_id)


def list_users(db: Session) -> List[User]:
    return UserRepository(db).list_all()


def delete_user(db: Session, user_id: int, storage: Optional[StorageBackend] = None) -> None:
    """Delete a non-admin user with all their rows; payload removal is best-effort."""
    user = UserRepository(db).get(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    if user.is_admin:
        raise ValidationError("Admin accounts cannot be deleted", field="user_id")

    files = db.query(StoredFile).filter(StoredFile.user_id == user_id).all()
    folders = db.query(Folder).filter(Folder.user_id == user_id).all()
    if storage is not None and files:
        try:
            storage.remove(files, folders, user_id)
        except Exception:
            logger.warning("Payload removal failed for deleted user", exc_info=True, extra={"user_id": user_id})

    db.query(StoredFile).filter(StoredFile.user_id == user_id).delete(synchronize_session=False)
    db.query(Folder).filter(Folder.user_id == user_id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("User deleted", extra={"user_id": user_id, "files": len(files)})
