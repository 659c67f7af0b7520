"""Repository for users and session tokens."""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.user import AuthToken, User


class UserRepository:
    """CRUD for users and auth_tokens."""

    def __init__(self, db: Session):
        self.db = db

    # --- Users ---

    def get(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def count(self) -> int:
        return self.db.query(User).count()

    def list_all(self) -> List[User]:
        return self.db.query(User).order_by(User.is_admin.desc(), User.username).all()

    def create(self, username: str, password_hash: str, is_admin: bool, max_storage_bytes: int) -> User:
        user = User(
            username=username,
            password_hash=password_hash,
            is_admin=is_admin,
            max_storage_bytes=max_storage_bytes,
        )
        self.db.add(user)
        self.db.flush()
        return user

    # --- Tokens ---

    def add_token(self, user_id: int, token: str, expires_at: int) -> AuthToken:
        row = AuthToken(user_id=user_id, token=token, expires_at=expires_at)
        self.db.add(row)
        self.db.flush()
        return row

    def find_token(self, token: str) -> Optional[AuthToken]:
        return self.db.query(AuthToken).filter(AuthToken.token == token).first()

    def delete_token(self, token: str) -> int:
        return self.db.query(AuthToken).filter(AuthToken.token == token).delete(synchronize_session=False)

    def delete_tokens_for_user(self, user_id: int, keep: Optional[str] = None) -> int:
        query = self.db.query(AuthToken).filter(AuthToken.user_id == user_id)
        if keep:
            query = query.filter(AuthToken.token != keep)
        return query.delete(synchronize_session=False)

    def delete_expired_tokens(self, now: int) -> int:
        return self.db.query(AuthToken).filter(AuthToken.expires_at <= now).delete(synchronize_session=False)
