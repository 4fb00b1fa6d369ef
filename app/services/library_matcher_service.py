"""Library matcher — reconciles library test cases with automated tests.

The library is curated by humans and the automated test table is filled by
CI ingestion; the two share no keys. Links are therefore created either
manually or by scoring titles (see helpers/title_matching.py).

auto_match() rules:
  - Works on a snapshot of unlinked, non-ARCHIVED test cases taken at call time.
  - Each created link is committed on its own; partial progress is always
    consistent and a cancelled or crashed run can simply be re-invoked.
  - Test cases linked in the meantime (manually or by a concurrent run) are
    skipped, so repeated runs converge and never duplicate a link.
"""

from __future__ import annotations

import logging
from collections import namedtuple

from flask import current_app
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError
from app.models import db
from app.models.automation import AutomatedTest
from app.models.library import LibraryTestCase, LibraryTestCaseLink
from app.services import event_bus
from app.services.helpers.lookups import get_or_raise
from app.services.helpers.title_matching import rank_candidates

logger = logging.getLogger(__name__)


def _threshold(threshold: int | None) -> int:
    if threshold is not None:
        return threshold
    return current_app.config.get("LIBRARY_MATCH_THRESHOLD", 85)


def _has_link(test_case_id: int) -> bool:
    return db.session.execute(
        select(exists().where(LibraryTestCaseLink.test_case_id == test_case_id))
    ).scalar()


def _link(test_case_id: int, automated_test_id: str) -> LibraryTestCaseLink | None:
    return db.session.execute(
        select(LibraryTestCaseLink).where(
            LibraryTestCaseLink.test_case_id == test_case_id,
            LibraryTestCaseLink.automated_test_id == automated_test_id,
        )
    ).scalar_one_or_none()


# Plain tuples survive the per-link commits in auto_match() without reloads
Candidate = namedtuple("Candidate", "id title file_path team_id last_executed_at")


def _load_candidates() -> list[Candidate]:
    return [
        Candidate(t.id, t.title, t.file_path, t.team_id, t.last_executed_at)
        for t in db.session.execute(select(AutomatedTest).order_by(AutomatedTest.id)).scalars()
    ]


# ── Batch auto-match ─────────────────────────────────────────────────────────


def auto_match(threshold: int | None = None, cancel=None) -> dict:
    """Link every unlinked test case to its best-scoring automated test.

    Args:
        threshold: Minimum score (0–100) to accept; defaults to
                   LIBRARY_MATCH_THRESHOLD.
        cancel: Optional threading.Event-like object; checked between test
                cases. Links created before cancellation stay.

    Returns:
        {"scanned", "matched", "skipped", "unmatched", "cancelled", "links"}
    """
    threshold = _threshold(threshold)
    pending_ids = db.session.execute(
        select(LibraryTestCase.id)
        .where(
            LibraryTestCase.status != "ARCHIVED",
            ~exists().where(LibraryTestCaseLink.test_case_id == LibraryTestCase.id),
        )
        .order_by(LibraryTestCase.id)
    ).scalars().all()
    candidates = _load_candidates()

    scanned = matched = skipped = unmatched = 0
    cancelled = False
    links = []

    for test_case_id in pending_ids:
        if cancel is not None and cancel.is_set():
            cancelled = True
            break
        scanned += 1

        test_case = db.session.get(LibraryTestCase, test_case_id)
        if test_case is None or test_case.status == "ARCHIVED" or _has_link(test_case_id):
            skipped += 1
            continue

        ranked = rank_candidates(test_case.title, candidates)
        if not ranked or ranked[0][0] < threshold:
            unmatched += 1
            continue

        score, best = ranked[0]
        link = LibraryTestCaseLink(
            test_case_id=test_case_id,
            automated_test_id=best.id,
            auto_matched=True,
            score=score,
        )
        db.session.add(link)
        try:
            db.session.commit()
        except IntegrityError:
            # Linked concurrently, or the test case vanished mid-run
            db.session.rollback()
            skipped += 1
            continue

        matched += 1
        links.append({"test_case_id": test_case_id, "automated_test_id": best.id, "score": score})
        logger.debug(
            "Auto-matched test_case_id=%s automated_test_id=%s score=%s",
            test_case_id, best.id, score,
        )

    result = {
        "scanned": scanned,
        "matched": matched,
        "skipped": skipped,
        "unmatched": unmatched,
        "cancelled": cancelled,
        "links": links,
    }
    logger.info(
        "Auto-match finished scanned=%s matched=%s skipped=%s unmatched=%s cancelled=%s",
        scanned, matched, skipped, unmatched, cancelled,
    )
    event_bus.publish(event_bus.EVENT_AUTO_MATCH_COMPLETED, {
        k: v for k, v in result.items() if k != "links"
    })
    return result


# ── Read-only suggestions ────────────────────────────────────────────────────


def suggest_matches(test_case_id: int, limit: int | None = None, threshold: int | None = None) -> list[dict]:
    """Top-K "maybe" candidates scoring above 0 but below the threshold.

    Automated tests already linked to this test case are excluded.
    """
    test_case = get_or_raise(LibraryTestCase, test_case_id)
    threshold = _threshold(threshold)
    if limit is None:
        limit = current_app.config.get("LIBRARY_MATCH_SUGGESTION_LIMIT", 5)

    linked_ids = set(
        db.session.execute(
            select(LibraryTestCaseLink.automated_test_id)
            .where(LibraryTestCaseLink.test_case_id == test_case_id)
        ).scalars().all()
    )
    candidates = [c for c in _load_candidates() if c.id not in linked_ids]

    suggestions = []
    for score, candidate in rank_candidates(test_case.title, candidates):
        if score <= 0 or score >= threshold:
            continue
        suggestions.append({
            "score": score,
            "automated_test": {
                "id": candidate.id,
                "title": candidate.title,
                "file_path": candidate.file_path,
                "team_id": candidate.team_id,
                "last_executed_at": (
                    candidate.last_executed_at.isoformat() if candidate.last_executed_at else None
                ),
            },
        })
        if len(suggestions) >= limit:
            break
    return suggestions


# ── Manual links ─────────────────────────────────────────────────────────────


def link_test(test_case_id: int, automated_test_id: str) -> dict:
    """Create a manual link, or confirm an existing auto-matched one.

    Raises:
        NotFoundError: Unknown test case or automated test.
        ConflictError: A manual link already exists.
    """
    get_or_raise(LibraryTestCase, test_case_id)
    get_or_raise(AutomatedTest, automated_test_id)

    link = _link(test_case_id, automated_test_id)
    if link is not None:
        if not link.auto_matched:
            raise ConflictError("LibraryTestCaseLink", "automated_test_id", automated_test_id)
        link.auto_matched = False
        link.score = None
        db.session.commit()
        logger.info(
            "Auto link confirmed test_case_id=%s automated_test_id=%s",
            test_case_id, automated_test_id,
        )
        return link.to_dict()

    link = LibraryTestCaseLink(
        test_case_id=test_case_id,
        automated_test_id=automated_test_id,
        auto_matched=False,
        score=None,
    )
    db.session.add(link)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("LibraryTestCaseLink", "automated_test_id", automated_test_id)

    logger.info("Linked test_case_id=%s automated_test_id=%s", test_case_id, automated_test_id)
    return link.to_dict()


def unlink_test(test_case_id: int, automated_test_id: str) -> None:
    """Remove a link. Raises NotFoundError if it does not exist."""
    link = _link(test_case_id, automated_test_id)
    if link is None:
        raise NotFoundError(
            resource="LibraryTestCaseLink", resource_id=f"{test_case_id}<->{automated_test_id}",
        )
    db.session.delete(link)
    db.session.commit()
    logger.info("Unlinked test_case_id=%s automated_test_id=%s", test_case_id, automated_test_id)


def list_links(test_case_id: int) -> list[dict]:
    get_or_raise(LibraryTestCase, test_case_id)
    rows = db.session.execute(
        select(LibraryTestCaseLink)
        .where(LibraryTestCaseLink.test_case_id == test_case_id)
        .order_by(LibraryTestCaseLink.id)
    ).scalars().all()
    return [link.to_dict() for link in rows]
