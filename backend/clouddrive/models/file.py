"""File model (``files`` table)."""

from sqlalchemy import BigInteger, Column, ForeignKey, Index, Integer, String, Text, text

from ..database import Base


class StoredFile(Base):
    """Metadata for one payload held by a storage backend.

    message_id is the logical id (epoch ms * 1000 + random suffix, kept as
    text). physical_id locates the payload on the backend that stored it;
    backend_message_ref is an extra handle some backends need for deletion.
    """

    __tablename__ = "files"
    __table_args__ = (
        Index(
            "uq_files_active_name",
            "fileName", "folder_id", "user_id",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = 0"),
        ),
        Index("ix_files_folder_id", "folder_id"),
        Index("ix_files_user_deleted", "user_id", "is_deleted"),
        Index("ix_files_physical_id", "physical_id"),
        Index("ix_files_share_token", "share_token"),
    )

    message_id = Column(String(32), primary_key=True)
    file_name = Column("fileName", String(255), nullable=False)
    mimetype = Column(String(255), nullable=True)
    physical_id = Column(Text, nullable=True)
    thumb_physical_id = Column(Text, nullable=True)
    backend_message_ref = Column(String(64), nullable=True)
    date = Column(BigInteger, nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    folder_id = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    storage_type = Column(String(20), nullable=True)

    is_deleted = Column(Integer, nullable=False, default=0)
    deleted_at = Column(BigInteger, nullable=True)

    share_token = Column(String(64), nullable=True)
    share_expires_at = Column(BigInteger, nullable=True)
    share_password = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<StoredFile id={self.message_id} name={self.file_name!r} folder={self.folder_id}>"
