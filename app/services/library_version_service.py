"""Library version service — append-only snapshot history per test case.

Transaction policy:
  append_version() flushes but never commits; the caller (library_service or
  rollback below) commits the test case mutation and the snapshot together.
  rollback() owns its own commit.

Concurrency:
  current_version is advanced with a compare-and-swap UPDATE
  (WHERE id = ? AND current_version = ?). Two concurrent edits of the same
  test case cannot both create version N+1: the loser sees rowcount 0 and
  gets ConflictError, and the (test_case_id, version) unique constraint
  backs the same guarantee at the DB level.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.library import CONTENT_FIELDS, LibraryTestCase, LibraryTestCaseVersion
from app.services import event_bus
from app.services.helpers.lookups import get_or_raise

logger = logging.getLogger(__name__)

INITIAL_CHANGE_NOTES = "Initial version"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(test_case_id: int, version: int, content: dict, change_notes, author) -> LibraryTestCaseVersion:
    return LibraryTestCaseVersion(
        test_case_id=test_case_id,
        version=version,
        title=content["title"],
        description=content.get("description") or "",
        steps=content.get("steps") or "",
        preconditions=content.get("preconditions") or "",
        expected_outcome=content.get("expected_outcome") or "",
        change_notes=change_notes,
        created_by=author,
    )


def create_initial_version(test_case: LibraryTestCase, author: str) -> LibraryTestCaseVersion:
    """Snapshot a freshly inserted test case as version 1 (uncommitted)."""
    snap = _snapshot(test_case.id, 1, test_case.content(), INITIAL_CHANGE_NOTES, author)
    test_case.current_version = 1
    db.session.add(snap)
    db.session.flush()
    return snap


def append_version(
    test_case: LibraryTestCase,
    content: dict,
    change_notes: str | None,
    author: str,
) -> LibraryTestCaseVersion:
    """Write new live content and its snapshot at current_version + 1.

    Args:
        test_case: The test case being edited. Pending metadata changes on it
                   are flushed together with the content update.
        content: Full content dict (all CONTENT_FIELDS).
        change_notes: Free-text reason for the change.
        author: Opaque user id of the editor.

    Returns:
        The new LibraryTestCaseVersion (uncommitted).

    Raises:
        ValidationError: If the title would become empty.
        ConflictError: If another writer advanced the version first.
    """
    title = (content.get("title") or "").strip()
    if not title:
        raise ValidationError("title cannot be empty", details={"title": "required"})
    content = {**{f: content.get(f) or "" for f in CONTENT_FIELDS}, "title": title}

    db.session.flush()
    expected = test_case.current_version
    next_version = expected + 1

    result = db.session.execute(
        update(LibraryTestCase)
        .where(
            LibraryTestCase.id == test_case.id,
            LibraryTestCase.current_version == expected,
        )
        .values(
            current_version=next_version,
            updated_by=author,
            updated_at=_utcnow(),
            **content,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning(
            "Version race lost test_case_id=%s expected_version=%s",
            test_case.id, expected,
        )
        raise ConflictError(
            "LibraryTestCaseVersion", "version", next_version,
            message=f"Test case {test_case.id} was modified concurrently; reload and retry",
        )

    snap = _snapshot(test_case.id, next_version, content, change_notes, author)
    db.session.add(snap)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("LibraryTestCaseVersion", "version", next_version)

    db.session.expire(test_case)
    logger.info(
        "Version appended test_case_id=%s version=%s by=%s",
        test_case.id, next_version, author,
    )
    return snap


# ── Queries ──────────────────────────────────────────────────────────────────


def list_versions(test_case_id: int, limit: int = 20, offset: int = 0) -> dict:
    """Return snapshots newest first as {"items": [...], "total": n}."""
    get_or_raise(LibraryTestCase, test_case_id)

    total = db.session.execute(
        select(func.count()).where(LibraryTestCaseVersion.test_case_id == test_case_id)
    ).scalar_one()
    rows = db.session.execute(
        select(LibraryTestCaseVersion)
        .where(LibraryTestCaseVersion.test_case_id == test_case_id)
        .order_by(LibraryTestCaseVersion.version.desc())
        .limit(limit)
        .offset(offset)
    ).scalars().all()
    return {"items": [v.to_dict() for v in rows], "total": total}


def get_version(test_case_id: int, version: int) -> LibraryTestCaseVersion:
    """Fetch one snapshot. Raises NotFoundError if it does not exist."""
    snap = db.session.execute(
        select(LibraryTestCaseVersion).where(
            LibraryTestCaseVersion.test_case_id == test_case_id,
            LibraryTestCaseVersion.version == version,
        )
    ).scalar_one_or_none()
    if snap is None:
        raise NotFoundError(resource="LibraryTestCaseVersion", resource_id=f"{test_case_id}/v{version}")
    return snap


# ── Rollback ─────────────────────────────────────────────────────────────────


def rollback(test_case_id: int, version: int, author: str) -> dict:
    """Restore the content of snapshot ``version`` as a new version.

    History never shrinks: the restored content becomes current_version + 1
    with change notes "Rolled back to vN".

    Raises:
        NotFoundError: Unknown test case or version (nothing is written).
        ConflictError: ``version`` is already the current version, or a
                       concurrent edit won the version race.
    """
    test_case = get_or_raise(LibraryTestCase, test_case_id, for_update=True)
    snap = get_version(test_case_id, version)

    if version == test_case.current_version:
        raise ConflictError(
            "LibraryTestCaseVersion", "version", version,
            message=f"Version {version} is already the current version",
        )

    previous = test_case.current_version
    new_snap = append_version(test_case, snap.content(), f"Rolled back to v{version}", author)
    db.session.commit()

    logger.info(
        "Rolled back test_case_id=%s to v%s as v%s by=%s",
        test_case_id, version, new_snap.version, author,
    )
    event_bus.publish(event_bus.EVENT_VERSION_ROLLED_BACK, {
        "test_case_id": test_case_id,
        "restored_version": version,
        "previous_version": previous,
        "new_version": new_snap.version,
        "by": author,
    })
    return test_case.to_dict()
