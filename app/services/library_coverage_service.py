"""Library coverage analytics — read-only reports over links and telemetry.

coverage_stats():
    Counts by status and priority plus the automation coverage of ACTIVE
    test cases: round(100 · ACTIVE with ≥1 link / ACTIVE).

coverage_gaps():
    ACTIVE test cases with no link ("unlinked"), or whose linked automated
    tests have all not run within ``older_than_days`` ("stale"). A larger
    threshold moves the staleness cutoff further back, so the gap set can
    only shrink or stay equal as the threshold grows.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, exists, func, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.automation import AutomatedTest
from app.models.library import (
    PRIORITIES,
    TEST_CASE_STATUSES,
    LibraryCollection,
    LibraryTestCase,
    LibraryTestCaseLink,
)
from app.services.helpers.lookups import get_or_raise

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def coverage_stats(collection_id: int | None = None) -> dict:
    """Aggregate counts for the whole library or one collection."""
    filters = []
    if collection_id is not None:
        get_or_raise(LibraryCollection, collection_id)
        filters.append(LibraryTestCase.collection_id == collection_id)

    has_link = exists().where(LibraryTestCaseLink.test_case_id == LibraryTestCase.id)

    total, linked, active, active_linked = db.session.execute(
        select(
            func.count(LibraryTestCase.id),
            func.coalesce(func.sum(case((has_link, 1), else_=0)), 0),
            func.coalesce(func.sum(case((LibraryTestCase.status == "ACTIVE", 1), else_=0)), 0),
            func.coalesce(func.sum(case(
                ((LibraryTestCase.status == "ACTIVE") & has_link, 1), else_=0,
            )), 0),
        ).where(*filters)
    ).one()

    by_status = {s: 0 for s in TEST_CASE_STATUSES}
    for status, count in db.session.execute(
        select(LibraryTestCase.status, func.count()).where(*filters).group_by(LibraryTestCase.status)
    ):
        by_status[status] = count

    by_priority = {p: 0 for p in PRIORITIES}
    for priority, count in db.session.execute(
        select(LibraryTestCase.priority, func.count()).where(*filters).group_by(LibraryTestCase.priority)
    ):
        by_priority[priority] = count

    coverage = round(active_linked / active * 100) if active else 0

    return {
        "collection_id": collection_id,
        "total": total,
        "linked": linked,
        "unlinked": total - linked,
        "active": active,
        "active_linked": active_linked,
        "coverage": coverage,
        "by_status": by_status,
        "by_priority": by_priority,
    }


def coverage_gaps(
    older_than_days: int = 7,
    collection_id: int | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """ACTIVE test cases lacking a fresh automated correlation.

    Args:
        older_than_days: Staleness tolerance; a linked test that ran within
                         this many days keeps the test case out of the list.
        collection_id: Optional collection scope.
        now: Reference time (defaults to current UTC time).

    Raises:
        ValidationError: Negative threshold.
        NotFoundError: Unknown collection.
    """
    if older_than_days is None or older_than_days < 0:
        raise ValidationError(
            "older_than_days must be a non-negative integer",
            details={"older_than_days": older_than_days},
        )
    if collection_id is not None:
        get_or_raise(LibraryCollection, collection_id)

    now = _as_utc(now) or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=older_than_days)

    link_stats = (
        select(
            LibraryTestCaseLink.test_case_id.label("test_case_id"),
            func.count(LibraryTestCaseLink.id).label("link_count"),
            func.max(AutomatedTest.last_executed_at).label("last_executed_at"),
        )
        .join(AutomatedTest, AutomatedTest.id == LibraryTestCaseLink.automated_test_id)
        .group_by(LibraryTestCaseLink.test_case_id)
        .subquery()
    )
    stmt = (
        select(LibraryTestCase, link_stats.c.link_count, link_stats.c.last_executed_at)
        .outerjoin(link_stats, link_stats.c.test_case_id == LibraryTestCase.id)
        .where(LibraryTestCase.status == "ACTIVE")
        .order_by(LibraryTestCase.priority, LibraryTestCase.created_at, LibraryTestCase.id)
    )
    if collection_id is not None:
        stmt = stmt.where(LibraryTestCase.collection_id == collection_id)

    gaps = []
    for test_case, link_count, last_executed_at in db.session.execute(stmt):
        last_executed_at = _as_utc(last_executed_at)
        if not link_count:
            reason = "unlinked"
        elif last_executed_at is None or last_executed_at < cutoff:
            reason = "stale"
        else:
            continue
        gaps.append({
            **test_case.to_summary(),
            "reason": reason,
            "link_count": link_count or 0,
            "last_executed_at": last_executed_at.isoformat() if last_executed_at else None,
        })

    logger.debug(
        "Coverage gaps computed older_than_days=%s collection_id=%s count=%s",
        older_than_days, collection_id, len(gaps),
    )
    return gaps
