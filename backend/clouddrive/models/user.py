"""User and AuthToken models.

Users authenticate with username/password and receive opaque session
tokens stored in ``auth_tokens``. Every folder and file row is owned by
exactly one user; deleting a user cascades to their rows.
"""

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base

# 1 GiB, applied when max_storage_bytes is NULL.
DEFAULT_MAX_STORAGE_BYTES = 1073741824


class User(Base):
    """Account with a storage ceiling.

    max_storage_bytes: NULL means the 1 GiB default, 0 means unlimited.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    max_storage_bytes = Column(BigInteger, nullable=True, default=DEFAULT_MAX_STORAGE_BYTES)

    tokens = relationship("AuthToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def effective_max_storage(self) -> int:
        if self.max_storage_bytes is None:
            return DEFAULT_MAX_STORAGE_BYTES
        return self.max_storage_bytes


class AuthToken(Base):
    """Login session. ``expires_at`` is epoch milliseconds."""

    __tablename__ = "auth_tokens"
    __table_args__ = (
        Index("ix_auth_tokens_user_id", "user_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(128), unique=True, nullable=False)
    expires_at = Column(BigInteger, nullable=False)

    user = relationship("User", back_populates="tokens")
