"""Base repository with shared owner-scoped get-by-ID patterns.

Subclasses specify model_class, id_column, and not_found_error; the base
provides lookups that always filter by the owning user, so a caller can
never reach another tenant's row by guessing an id.
"""

from typing import Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from ..database import Base
from ..exceptions import CloudDriveError

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for owner-scoped SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:     The SQLAlchemy model (e.g., Folder)
        id_column:       Attribute name of the primary key (default "id")
        not_found_error: Exception class to raise from get_owned
    """

    model_class: Type[ModelT]
    id_column: str = "id"
    not_found_error: Type[CloudDriveError]

    def __init__(self, db: Session):
        self.db = db

    def _owned(self, user_id: int) -> Query:
        return self.db.query(self.model_class).filter(self.model_class.user_id == user_id)

    def get_owned(self, entity_id, user_id: int) -> ModelT:
        """Get entity by primary key within the owner's scope. Raises if missing."""
        entity = self.get_owned_optional(entity_id, user_id)
        if entity is None:
            raise self.not_found_error(entity_id)
        return entity

    def get_owned_optional(self, entity_id, user_id: int) -> Optional[ModelT]:
        col = getattr(self.model_class, self.id_column)
        return self._owned(user_id).filter(col == entity_id).first()

    def get_many(self, entity_ids: Iterable, user_id: int) -> List[ModelT]:
        ids = list(entity_ids)
        if not ids:
            return []
        col = getattr(self.model_class, self.id_column)
        return self._owned(user_id).filter(col.in_(ids)).all()

    def delete_ids(self, entity_ids: Iterable, user_id: int) -> int:
        ids = list(dict.fromkeys(entity_ids))
        if not ids:
            return 0
        col = getattr(self.model_class, self.id_column)
        return self._owned(user_id).filter(col.in_(ids)).delete(synchronize_session=False)
