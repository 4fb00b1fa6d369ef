"""Library dependency graph — "test case A requires test case B".

The graph is an edge table (library_dependencies) indexed on both ends:
forward adjacency is a scan on test_case_id, reverse adjacency a scan on
depends_on_id. Uniqueness and the no-self-edge rule are enforced by DB
constraints as well as here, so concurrent inserts cannot slip a duplicate
past the check.

When LIBRARY_DEPENDENCY_ACYCLIC is enabled (default) add_dependency() also
rejects edges that would close a cycle, using an iterative DFS over the
existing forward edges.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.library import LibraryDependency, LibraryTestCase
from app.services.helpers.lookups import get_or_raise

logger = logging.getLogger(__name__)


def _edge(test_case_id: int, depends_on_id: int) -> LibraryDependency | None:
    return db.session.execute(
        select(LibraryDependency).where(
            LibraryDependency.test_case_id == test_case_id,
            LibraryDependency.depends_on_id == depends_on_id,
        )
    ).scalar_one_or_none()


def would_create_cycle(test_case_id: int, depends_on_id: int) -> bool:
    """Return True if adding test_case_id → depends_on_id closes a cycle.

    Walks forward from depends_on_id; reaching test_case_id means
    depends_on_id already (transitively) requires test_case_id.
    """
    if test_case_id == depends_on_id:
        return True

    visited = set()
    stack = [depends_on_id]
    while stack:
        current = stack.pop()
        if current == test_case_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(
            db.session.execute(
                select(LibraryDependency.depends_on_id)
                .where(LibraryDependency.test_case_id == current)
            ).scalars().all()
        )
    return False


def add_dependency(test_case_id: int, depends_on_id: int) -> dict:
    """Insert the edge test_case_id → depends_on_id.

    Raises:
        ValidationError: Self-dependency, or the edge would create a cycle.
        NotFoundError: Either test case does not exist.
        ConflictError: The edge already exists.
    """
    if test_case_id == depends_on_id:
        raise ValidationError(
            "A test case cannot depend on itself",
            details={"depends_on_id": "must differ from test_case_id"},
        )

    get_or_raise(LibraryTestCase, test_case_id)
    get_or_raise(LibraryTestCase, depends_on_id)

    if _edge(test_case_id, depends_on_id) is not None:
        raise ConflictError("LibraryDependency", "depends_on_id", depends_on_id)

    if current_app.config.get("LIBRARY_DEPENDENCY_ACYCLIC", True) and would_create_cycle(
        test_case_id, depends_on_id,
    ):
        raise ValidationError(
            "Adding this dependency would create a cycle",
            details={"depends_on_id": depends_on_id},
        )

    dep = LibraryDependency(test_case_id=test_case_id, depends_on_id=depends_on_id)
    db.session.add(dep)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost an insert race to an identical edge
        db.session.rollback()
        raise ConflictError("LibraryDependency", "depends_on_id", depends_on_id)

    logger.info("Dependency added test_case_id=%s depends_on_id=%s", test_case_id, depends_on_id)
    return dep.to_dict()


def remove_dependency(test_case_id: int, depends_on_id: int) -> None:
    """Delete the edge. Raises NotFoundError if it does not exist."""
    dep = _edge(test_case_id, depends_on_id)
    if dep is None:
        raise NotFoundError(
            resource="LibraryDependency", resource_id=f"{test_case_id}->{depends_on_id}",
        )
    db.session.delete(dep)
    db.session.commit()
    logger.info("Dependency removed test_case_id=%s depends_on_id=%s", test_case_id, depends_on_id)


def _neighbour_dict(tc: LibraryTestCase) -> dict:
    return {
        "id": tc.id,
        "title": tc.title,
        "status": tc.status,
        "is_active": tc.status == "ACTIVE",
    }


def dependencies_of(test_case_id: int, include_archived: bool = False) -> list[dict]:
    """Test cases that ``test_case_id`` requires, with their current status."""
    get_or_raise(LibraryTestCase, test_case_id)
    stmt = (
        select(LibraryTestCase)
        .join(LibraryDependency, LibraryDependency.depends_on_id == LibraryTestCase.id)
        .where(LibraryDependency.test_case_id == test_case_id)
        .order_by(LibraryTestCase.id)
    )
    if not include_archived:
        stmt = stmt.where(LibraryTestCase.status != "ARCHIVED")
    return [_neighbour_dict(tc) for tc in db.session.execute(stmt).scalars().all()]


def dependents_of(test_case_id: int, include_archived: bool = False) -> list[dict]:
    """Test cases that require ``test_case_id``."""
    get_or_raise(LibraryTestCase, test_case_id)
    stmt = (
        select(LibraryTestCase)
        .join(LibraryDependency, LibraryDependency.test_case_id == LibraryTestCase.id)
        .where(LibraryDependency.depends_on_id == test_case_id)
        .order_by(LibraryTestCase.id)
    )
    if not include_archived:
        stmt = stmt.where(LibraryTestCase.status != "ARCHIVED")
    return [_neighbour_dict(tc) for tc in db.session.execute(stmt).scalars().all()]
