"""Library suggestion workflow — moderated improvement proposals.

State machine:
    PENDING ──▶ ACCEPTED
            └─▶ REJECTED
Terminal states have no outgoing transitions. The review is a guarded
UPDATE ... WHERE status = 'PENDING', so two moderators reviewing at the same
time cannot both succeed.

Accepting a suggestion only records the decision. Suggestion content is free
text; applying it to the test case is a separate, explicit edit that goes
through the version service like any other edit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.library import (
    SUGGESTION_STATUSES,
    SUGGESTION_TYPES,
    LibrarySuggestion,
    LibraryTestCase,
    validate_suggestion_transition,
)
from app.services import event_bus
from app.services.helpers.lookups import get_or_raise

logger = logging.getLogger(__name__)

REVIEW_OUTCOMES = ("ACCEPTED", "REJECTED")


def _validate_status_filter(status: str | None) -> None:
    if status and status not in SUGGESTION_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(SUGGESTION_STATUSES)}",
            details={"status": status},
        )


def create_suggestion(test_case_id: int, suggestion_type: str, content: str, author: str) -> dict:
    """Attach a PENDING suggestion to a test case.

    Raises:
        NotFoundError: Unknown test case.
        ValidationError: Unknown type or empty content.
    """
    get_or_raise(LibraryTestCase, test_case_id)

    if suggestion_type not in SUGGESTION_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(SUGGESTION_TYPES)}",
            details={"type": suggestion_type},
        )
    if content is not None and not isinstance(content, str):
        raise ValidationError("content must be a string", details={"content": type(content).__name__})
    content = (content or "").strip()
    if not content:
        raise ValidationError("content is required", details={"content": "required"})

    suggestion = LibrarySuggestion(
        test_case_id=test_case_id,
        type=suggestion_type,
        content=content,
        status="PENDING",
        created_by=author,
    )
    db.session.add(suggestion)
    db.session.commit()

    logger.info(
        "Suggestion created id=%s test_case_id=%s type=%s",
        suggestion.id, test_case_id, suggestion_type,
    )
    return suggestion.to_dict()


def review_suggestion(suggestion_id: int, outcome: str, reviewer: str, note: str | None = None) -> dict:
    """Move a PENDING suggestion to ACCEPTED or REJECTED.

    Raises:
        NotFoundError: Unknown suggestion.
        ValidationError: outcome is not ACCEPTED or REJECTED.
        ConflictError: The suggestion was already reviewed.
    """
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError(
            f"outcome must be one of: {', '.join(REVIEW_OUTCOMES)}",
            details={"outcome": outcome},
        )
    if note is not None and not isinstance(note, str):
        raise ValidationError("note must be a string", details={"note": type(note).__name__})

    suggestion = get_or_raise(LibrarySuggestion, suggestion_id)
    if not validate_suggestion_transition(suggestion.status, outcome):
        raise ConflictError(
            "LibrarySuggestion", "status", suggestion.status,
            message=f"Suggestion {suggestion_id} was already reviewed ({suggestion.status})",
        )

    reviewed_at = datetime.now(timezone.utc)
    result = db.session.execute(
        update(LibrarySuggestion)
        .where(LibrarySuggestion.id == suggestion_id, LibrarySuggestion.status == "PENDING")
        .values(status=outcome, reviewed_by=reviewer, reviewed_at=reviewed_at, review_note=note)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ConflictError(
            "LibrarySuggestion", "status", "PENDING",
            message=f"Suggestion {suggestion_id} was already reviewed",
        )
    db.session.commit()
    db.session.refresh(suggestion)

    logger.info(
        "Suggestion reviewed id=%s outcome=%s by=%s", suggestion_id, outcome, reviewer,
    )
    event_bus.publish(event_bus.EVENT_SUGGESTION_REVIEWED, {
        "suggestion_id": suggestion_id,
        "test_case_id": suggestion.test_case_id,
        "status": outcome,
        "by": reviewer,
    })
    return suggestion.to_dict()


def _paginate(stmt, limit: int, offset: int, include_test_case: bool = False) -> dict:
    total = db.session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = db.session.execute(stmt.limit(limit).offset(offset)).scalars().all()
    return {
        "items": [s.to_dict(include_test_case=include_test_case) for s in rows],
        "total": total,
    }


def list_for_entry(test_case_id: int, status: str | None = None, limit: int = 20, offset: int = 0) -> dict:
    """Suggestions of one test case, newest first."""
    get_or_raise(LibraryTestCase, test_case_id)
    _validate_status_filter(status)

    stmt = (
        select(LibrarySuggestion)
        .where(LibrarySuggestion.test_case_id == test_case_id)
        .order_by(LibrarySuggestion.created_at.desc(), LibrarySuggestion.id.desc())
    )
    if status:
        stmt = stmt.where(LibrarySuggestion.status == status)
    return _paginate(stmt, limit, offset)


def list_all(
    status: str | None = None,
    include_archived: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """Moderation queue across the library, newest first.

    Suggestions on ARCHIVED test cases are hidden unless include_archived.
    """
    _validate_status_filter(status)

    stmt = (
        select(LibrarySuggestion)
        .join(LibraryTestCase, LibraryTestCase.id == LibrarySuggestion.test_case_id)
        .order_by(LibrarySuggestion.created_at.desc(), LibrarySuggestion.id.desc())
    )
    if status:
        stmt = stmt.where(LibrarySuggestion.status == status)
    if not include_archived:
        stmt = stmt.where(LibraryTestCase.status != "ARCHIVED")
    return _paginate(stmt, limit, offset, include_test_case=True)
