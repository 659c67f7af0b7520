"""Recovery from unique-name violations caused by trashed rows.

Writes that put a name into a folder (insert, rename, move, restore) run
inside a SAVEPOINT. On ``IntegrityError`` the trashed occupant of the
contested slot, if any, is renamed to a placeholder and the write is
retried exactly once. An active occupant is a genuine collision and
surfaces as ``NameConflictError``.
"""

import logging
import secrets
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.token_factory import now_ms
from ..exceptions import NameConflictError
from ..repositories.file_repository import FileRepository
from ..repositories.folder_repository import FolderRepository
from .naming import KIND_FILE

logger = logging.getLogger(__name__)

T = TypeVar("T")


def trash_placeholder(name: str) -> str:
    """``{name}_deleted_{epoch_ms}_{0..999}``."""
    return f"{name}_deleted_{now_ms()}_{secrets.randbelow(1000)}"


def relocate_trashed_occupant(
    db: Session,
    kind: str,
    name: str,
    parent_id: Optional[int],
    user_id: int,
) -> bool:
    """Rename the trashed row holding *name* under *parent_id*.

    Returns:
        True if a trashed occupant was found and renamed.
    """
    if kind == KIND_FILE:
        occupant = FileRepository(db).find_trashed_in_folder(parent_id, name, user_id)
        if occupant is None:
            return False
        occupant.file_name = trash_placeholder(name)
    else:
        occupant = FolderRepository(db).find_trashed_child(parent_id, name, user_id)
        if occupant is None:
            return False
        occupant.name = trash_placeholder(name)

    db.flush()
    logger.info(
        "Relocated trashed %s out of a contested name",
        kind,
        extra={"user_id": user_id, "parent_id": parent_id},
    )
    return True


def _attempt(db: Session, operation: Callable[[], T]) -> T:
    with db.begin_nested():
        result = operation()
        db.flush()
    return result


def run_with_trash_retry(
    db: Session,
    operation: Callable[[], T],
    kind: str,
    name: str,
    parent_id: Optional[int],
    user_id: int,
) -> T:
    """Run *operation* and retry once after clearing a trashed namesake.

    *operation* must (re)apply all of its changes each time it is called:
    a rolled-back savepoint expires whatever the first attempt touched.

    Raises:
        NameConflictError: If the slot is held by an active row.
    """
    try:
        return _attempt(db, operation)
    except IntegrityError:
        if not relocate_trashed_occupant(db, kind, name, parent_id, user_id):
            raise NameConflictError(name, parent_id)

    try:
        return _attempt(db, operation)
    except IntegrityError:
        raise NameConflictError(name, parent_id)
