"""
Primary-key lookup helper for library services.

Every required get-by-id in the library services goes through get_or_raise()
so that a missing row always surfaces as NotFoundError with the model name,
never as a bare None that a caller could forget to check.

Usage:
    collection = get_or_raise(LibraryCollection, collection_id)

    # Read-modify-write paths (update, rollback) lock the row; no-op on SQLite
    test_case = get_or_raise(LibraryTestCase, test_case_id, for_update=True)
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, *, for_update: bool = False):
    """Fetch a single entity by PK or raise NotFoundError.

    Args:
        model: SQLAlchemy model class with an `id` PK column.
        pk: Primary key value to look up.
        for_update: Emit SELECT ... FOR UPDATE on backends that support it.

    Raises:
        NotFoundError: If no row has that primary key.
    """
    stmt = select(model).where(model.id == pk)
    if for_update:
        stmt = stmt.with_for_update()
    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug("get_or_raise: %s id=%s not found", model.__name__, pk)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result
