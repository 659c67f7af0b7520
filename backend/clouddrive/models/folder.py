"""Folder model."""

from sqlalchemy import BigInteger, Column, ForeignKey, Index, Integer, String, Text, text

from ..database import Base


class Folder(Base):
    """A node in a user's tree.

    parent_id is NULL only for the user's root folder (named ``/``).
    parent_id carries no foreign key: purging a merged-away shell may leave
    trashed children pointing at a vanished parent, and those rows surface
    at the top of the trash view and restore into the root.
    """

    __tablename__ = "folders"
    __table_args__ = (
        # Name uniqueness applies to active rows only; the trash can hold
        # any number of namesakes.
        Index(
            "uq_folders_active_name",
            "name", "parent_id", "user_id",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = 0"),
        ),
        Index("ix_folders_parent_id", "parent_id"),
        Index("ix_folders_user_deleted", "user_id", "is_deleted"),
        Index("ix_folders_share_token", "share_token"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    parent_id = Column(Integer, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # bcrypt hash; non-empty means locked
    password = Column(Text, nullable=True)

    # Soft delete: 0 active, 1 trashed. deleted_at is epoch ms.
    is_deleted = Column(Integer, nullable=False, default=0)
    deleted_at = Column(BigInteger, nullable=True)

    share_token = Column(String(64), nullable=True)
    share_expires_at = Column(BigInteger, nullable=True)
    share_password = Column(Text, nullable=True)

    @property
    def is_locked(self) -> bool:
        return bool(self.password)

    def __repr__(self) -> str:
        return f"<Folder id={self.id} name={self.name!r} parent={self.parent_id} deleted={self.is_deleted}>"
