"""Library catalog service — collections, test cases, discussions, bookmarks.

This module is the aggregate root of the library: every write to a test case
goes through here, and content changes are delegated to the version service so
that the live row and its snapshot are committed together.

Transaction policy:
  Each public function commits on success. Any failure raises one of the
  app.core.exceptions types after the session was rolled back; nothing is
  half-written.

Edit rules:
  - Content fields (title, description, steps, preconditions,
    expected_outcome) are versioned. An update whose content equals the live
    content creates no snapshot.
  - Metadata (priority, difficulty, status, collection_id, tags) is not
    versioned.
  - Callers may pass ``expected_version``; a mismatch is a ConflictError
    before anything is written.

Permissions:
  The service never looks at roles. Discussion moderation receives the
  pre-resolved ``can_moderate`` flag from the blueprint.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import delete, exists, func, or_, select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, ForbiddenError, ValidationError
from app.models import db
from app.models.library import (
    CONTENT_FIELDS,
    DIFFICULTIES,
    PRIORITIES,
    TEST_CASE_STATUSES,
    LibraryBookmark,
    LibraryCollection,
    LibraryDiscussion,
    LibrarySuggestion,
    LibraryTestCase,
    LibraryTestCaseLink,
    LibraryTestCaseTag,
    LibraryTestCaseVersion,
)
from app.services import library_dependency_service, library_version_service
from app.services.helpers.lookups import get_or_raise
from app.utils.steps import parse_criteria, parse_steps

logger = logging.getLogger(__name__)

COLLECTION_DELETE_MODES = ("block", "cascade")
RECENT_VERSIONS = 5
MAX_TAG_LENGTH = 50


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _text_value(field: str, value) -> str:
    """Return a text field as str; None means empty, other types are rejected."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: type(value).__name__})
    return value


def _require_text(data: dict, field: str) -> str:
    value = _text_value(field, data.get(field)).strip()
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


def _optional_text(data: dict, field: str) -> str:
    return _text_value(field, data.get(field)).strip()


def _parse_version(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("expected_version must be an integer", details={"expected_version": value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("expected_version must be an integer", details={"expected_version": value})


def _check_choice(field: str, value, choices) -> None:
    if value is not None and value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            details={field: value},
        )


def _normalize_tags(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("tags must be a list of strings", details={"tags": raw})

    tags = []
    for tag in raw:
        tag = str(tag).strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(
                f"tag must be at most {MAX_TAG_LENGTH} characters",
                details={"tags": tag},
            )
        if tag not in tags:
            tags.append(tag)
    return tags


def _set_tags(test_case: LibraryTestCase, tags: list[str]) -> None:
    """Replace the tag set, keeping rows for tags that survive."""
    wanted = set(tags)
    for row in list(test_case.tag_rows):
        if row.tag not in wanted:
            test_case.tag_rows.remove(row)
    existing = {row.tag for row in test_case.tag_rows}
    for tag in tags:
        if tag not in existing:
            test_case.tag_rows.append(LibraryTestCaseTag(tag=tag))


def _resolve_collection_id(value) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError("collection_id must be an integer", details={"collection_id": value})
    try:
        collection_id = int(value)
    except ValueError:
        raise ValidationError("collection_id must be an integer", details={"collection_id": value})
    return get_or_raise(LibraryCollection, collection_id).id


# ═════════════════════════════════════════════════════════════════════════════
# COLLECTIONS
# ═════════════════════════════════════════════════════════════════════════════


def _count_by_collection(collection_ids) -> dict[int, int]:
    if not collection_ids:
        return {}
    rows = db.session.execute(
        select(LibraryTestCase.collection_id, func.count(LibraryTestCase.id))
        .where(LibraryTestCase.collection_id.in_(collection_ids))
        .group_by(LibraryTestCase.collection_id)
    ).all()
    return {cid: count for cid, count in rows}


def create_collection(data: dict, author: str) -> dict:
    """Create a collection. team_id omitted means a global collection."""
    collection = LibraryCollection(
        name=_require_text(data, "name"),
        description=_optional_text(data, "description"),
        icon=_optional_text(data, "icon"),
        team_id=_optional_text(data, "team_id") or None,
        created_by=author,
    )
    db.session.add(collection)
    db.session.commit()
    logger.info("Collection created id=%s name=%s", collection.id, collection.name)
    return collection.to_dict(test_case_count=0)


def list_collections(team_id: str | None = None) -> list[dict]:
    """Collections of a team plus global ones (all collections without a team)."""
    stmt = select(LibraryCollection).order_by(LibraryCollection.name, LibraryCollection.id)
    if team_id:
        stmt = stmt.where(or_(LibraryCollection.team_id == team_id, LibraryCollection.team_id.is_(None)))
    collections = db.session.execute(stmt).scalars().all()
    counts = _count_by_collection([c.id for c in collections])
    return [c.to_dict(test_case_count=counts.get(c.id, 0)) for c in collections]


def get_collection(collection_id: int) -> dict:
    collection = get_or_raise(LibraryCollection, collection_id)
    counts = _count_by_collection([collection.id])
    return collection.to_dict(test_case_count=counts.get(collection.id, 0))


def update_collection(collection_id: int, data: dict) -> dict:
    collection = get_or_raise(LibraryCollection, collection_id)
    changes = {}
    if "name" in data:
        changes["name"] = _require_text(data, "name")
    for field in ("description", "icon"):
        if field in data:
            changes[field] = _optional_text(data, field)
    if "team_id" in data:
        changes["team_id"] = _optional_text(data, "team_id") or None
    for field, value in changes.items():
        setattr(collection, field, value)
    db.session.commit()
    logger.info("Collection updated id=%s", collection_id)
    return get_collection(collection_id)


def delete_collection(collection_id: int) -> dict:
    """Delete a collection according to LIBRARY_COLLECTION_DELETE_MODE.

    block:   a collection that still holds test cases raises ConflictError.
    cascade: its test cases are hard-deleted with the collection.

    Returns:
        {"deleted": id, "deleted_test_cases": n}
    """
    collection = get_or_raise(LibraryCollection, collection_id)
    mode = current_app.config.get("LIBRARY_COLLECTION_DELETE_MODE", "block")
    if mode not in COLLECTION_DELETE_MODES:
        raise ValidationError(
            f"LIBRARY_COLLECTION_DELETE_MODE must be one of: {', '.join(COLLECTION_DELETE_MODES)}",
            details={"mode": mode},
        )

    test_cases = db.session.execute(
        select(LibraryTestCase).where(LibraryTestCase.collection_id == collection_id)
    ).scalars().all()
    if test_cases and mode == "block":
        raise ConflictError(
            "LibraryCollection", "test_cases", len(test_cases),
            message=f"Collection {collection_id} still contains {len(test_cases)} test case(s)",
        )

    for test_case in test_cases:
        db.session.delete(test_case)
    db.session.delete(collection)
    db.session.commit()

    logger.info(
        "Collection deleted id=%s mode=%s test_cases=%s", collection_id, mode, len(test_cases),
    )
    return {"deleted": collection_id, "deleted_test_cases": len(test_cases)}


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASES
# ═════════════════════════════════════════════════════════════════════════════


def create_test_case(data: dict, author: str) -> dict:
    """Create a test case at version 1 together with its first snapshot.

    Raises:
        ValidationError: Missing title or unknown enum value.
        NotFoundError: collection_id does not exist.
    """
    title = _require_text(data, "title")
    priority = data.get("priority") or "P2"
    difficulty = data.get("difficulty") or "MEDIUM"
    status = data.get("status") or "DRAFT"
    _check_choice("priority", priority, PRIORITIES)
    _check_choice("difficulty", difficulty, DIFFICULTIES)
    _check_choice("status", status, TEST_CASE_STATUSES)
    tags = _normalize_tags(data.get("tags"))

    test_case = LibraryTestCase(
        collection_id=_resolve_collection_id(data.get("collection_id")),
        title=title,
        description=_text_value("description", data.get("description")),
        steps=_text_value("steps", data.get("steps")),
        preconditions=_text_value("preconditions", data.get("preconditions")),
        expected_outcome=_text_value("expected_outcome", data.get("expected_outcome")),
        priority=priority,
        difficulty=difficulty,
        status=status,
        current_version=1,
        created_by=author,
        updated_by=author,
    )
    _set_tags(test_case, tags)
    db.session.add(test_case)
    db.session.flush()

    library_version_service.create_initial_version(test_case, author)
    db.session.commit()

    logger.info(
        "Test case created id=%s collection_id=%s by=%s",
        test_case.id, test_case.collection_id, author,
        extra={"test_case_id": test_case.id},
    )
    return test_case.to_dict()


def list_test_cases(
    collection_id: int | None = None,
    status: str | None = None,
    priority: str | None = None,
    tags=None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Filtered listing, newest first. ``tags`` matches any of the given tags."""
    _check_choice("status", status or None, TEST_CASE_STATUSES)
    _check_choice("priority", priority or None, PRIORITIES)

    stmt = select(LibraryTestCase)
    if collection_id is not None:
        stmt = stmt.where(LibraryTestCase.collection_id == collection_id)
    if status:
        stmt = stmt.where(LibraryTestCase.status == status)
    if priority:
        stmt = stmt.where(LibraryTestCase.priority == priority)
    tag_list = _normalize_tags(tags)
    if tag_list:
        stmt = stmt.where(
            exists().where(
                LibraryTestCaseTag.test_case_id == LibraryTestCase.id,
                LibraryTestCaseTag.tag.in_(tag_list),
            )
        )
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            LibraryTestCase.title.ilike(pattern),
            LibraryTestCase.description.ilike(pattern),
        ))

    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.session.execute(
        stmt.order_by(LibraryTestCase.created_at.desc(), LibraryTestCase.id.desc())
        .limit(limit)
        .offset(offset)
    ).scalars().all()
    return {"items": [tc.to_dict() for tc in rows], "total": total}


def get_test_case(test_case_id: int, user_id: str | None = None) -> dict:
    """Detail view: live content plus everything the detail screen needs."""
    test_case = get_or_raise(LibraryTestCase, test_case_id)

    versions = db.session.execute(
        select(LibraryTestCaseVersion)
        .where(LibraryTestCaseVersion.test_case_id == test_case_id)
        .order_by(LibraryTestCaseVersion.version.desc())
        .limit(RECENT_VERSIONS)
    ).scalars().all()
    links = db.session.execute(
        select(LibraryTestCaseLink)
        .where(LibraryTestCaseLink.test_case_id == test_case_id)
        .order_by(LibraryTestCaseLink.id)
    ).scalars().all()

    pending_suggestions = db.session.execute(
        select(func.count()).where(
            LibrarySuggestion.test_case_id == test_case_id,
            LibrarySuggestion.status == "PENDING",
        )
    ).scalar_one()
    discussion_count = db.session.execute(
        select(func.count()).where(LibraryDiscussion.test_case_id == test_case_id)
    ).scalar_one()

    result = test_case.to_dict()
    result.update({
        "parsed_steps": parse_steps(test_case.steps),
        "parsed_criteria": parse_criteria(test_case.expected_outcome),
        "recent_versions": [v.to_dict() for v in versions],
        "dependencies": library_dependency_service.dependencies_of(test_case_id, include_archived=True),
        "dependents": library_dependency_service.dependents_of(test_case_id, include_archived=True),
        "links": [link.to_dict() for link in links],
        "counts": {
            "versions": test_case.current_version,
            "pending_suggestions": pending_suggestions,
            "discussions": discussion_count,
            "links": len(links),
        },
    })
    if user_id is not None:
        result["is_bookmarked"] = _bookmark_exists(user_id, test_case_id)
    return result


def update_test_case(test_case_id: int, data: dict, author: str) -> dict:
    """Apply metadata and content changes in one transaction.

    Args:
        data: Any subset of content fields, metadata fields, ``tags``,
              ``change_notes`` and ``expected_version``.

    Raises:
        NotFoundError: Unknown test case or collection.
        ValidationError: Empty title or unknown enum value.
        ConflictError: expected_version is stale, or a concurrent edit won.
    """
    test_case = get_or_raise(LibraryTestCase, test_case_id, for_update=True)

    expected = data.get("expected_version")
    if expected is not None:
        expected = _parse_version(expected)
    if expected is not None and expected != test_case.current_version:
        raise ConflictError(
            "LibraryTestCase", "current_version", test_case.current_version,
            message=(
                f"Test case {test_case_id} is at version {test_case.current_version}, "
                f"not {expected}; reload and retry"
            ),
        )

    for field, choices in (
        ("priority", PRIORITIES), ("difficulty", DIFFICULTIES), ("status", TEST_CASE_STATUSES),
    ):
        if field in data:
            _check_choice(field, data[field], choices)

    # Content is compared against the live row before any attribute changes
    live = test_case.content()
    content = {f: _text_value(f, data[f]) if f in data else live[f] for f in CONTENT_FIELDS}
    if "title" in data:
        content["title"] = content["title"].strip()
        if not content["title"]:
            raise ValidationError("title cannot be empty", details={"title": "required"})
    content_changed = any((content[f] or "") != (live[f] or "") for f in CONTENT_FIELDS)
    change_notes = _text_value("change_notes", data.get("change_notes")) or None

    try:
        for field in ("priority", "difficulty", "status"):
            if field in data:
                setattr(test_case, field, data[field])
        if "collection_id" in data:
            test_case.collection_id = _resolve_collection_id(data.get("collection_id"))
        if "tags" in data:
            _set_tags(test_case, _normalize_tags(data.get("tags")))
        test_case.updated_by = author

        if content_changed:
            library_version_service.append_version(
                test_case, content, change_notes, author,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Test case updated id=%s content_changed=%s version=%s by=%s",
        test_case_id, content_changed, test_case.current_version, author,
        extra={"test_case_id": test_case_id},
    )
    return test_case.to_dict()


def delete_test_case(test_case_id: int) -> None:
    """Hard delete with its versions, edges, links, suggestions, discussions, bookmarks."""
    test_case = get_or_raise(LibraryTestCase, test_case_id)
    db.session.delete(test_case)
    db.session.commit()
    logger.info("Test case deleted id=%s", test_case_id, extra={"test_case_id": test_case_id})


# ═════════════════════════════════════════════════════════════════════════════
# DISCUSSIONS
# ═════════════════════════════════════════════════════════════════════════════


def list_discussions(test_case_id: int) -> list[dict]:
    """Comments of a test case, oldest first."""
    get_or_raise(LibraryTestCase, test_case_id)
    rows = db.session.execute(
        select(LibraryDiscussion)
        .where(LibraryDiscussion.test_case_id == test_case_id)
        .order_by(LibraryDiscussion.created_at, LibraryDiscussion.id)
    ).scalars().all()
    return [d.to_dict() for d in rows]


def add_discussion(test_case_id: int, content: str, author: str) -> dict:
    get_or_raise(LibraryTestCase, test_case_id)
    discussion = LibraryDiscussion(
        test_case_id=test_case_id,
        content=_require_text({"content": content}, "content"),
        created_by=author,
    )
    db.session.add(discussion)
    db.session.commit()
    logger.info("Discussion added id=%s test_case_id=%s", discussion.id, test_case_id)
    return discussion.to_dict()


def update_discussion(discussion_id: int, content: str, user_id: str) -> dict:
    """Edit a comment. Only its author may edit it."""
    discussion = get_or_raise(LibraryDiscussion, discussion_id)
    if discussion.created_by != user_id:
        raise ForbiddenError("Only the author can edit this comment")
    discussion.content = _require_text({"content": content}, "content")
    db.session.commit()
    return discussion.to_dict()


def delete_discussion(discussion_id: int, user_id: str, can_moderate: bool = False) -> None:
    """Delete a comment as its author, or as a moderator."""
    discussion = get_or_raise(LibraryDiscussion, discussion_id)
    if discussion.created_by != user_id and not can_moderate:
        raise ForbiddenError("Only the author or a moderator can delete this comment")
    db.session.delete(discussion)
    db.session.commit()
    logger.info("Discussion deleted id=%s by=%s", discussion_id, user_id)


# ═════════════════════════════════════════════════════════════════════════════
# BOOKMARKS
# ═════════════════════════════════════════════════════════════════════════════


def _bookmark_exists(user_id: str, test_case_id: int) -> bool:
    return db.session.execute(
        select(exists().where(
            LibraryBookmark.user_id == user_id,
            LibraryBookmark.test_case_id == test_case_id,
        ))
    ).scalar()


def toggle_bookmark(test_case_id: int, user_id: str) -> dict:
    """Flip the bookmark state: delete it if present, insert it otherwise.

    Returns:
        {"test_case_id", "bookmarked"}

    Raises:
        ConflictError: A concurrent toggle inserted the same bookmark first.
    """
    get_or_raise(LibraryTestCase, test_case_id)

    result = db.session.execute(
        delete(LibraryBookmark).where(
            LibraryBookmark.user_id == user_id,
            LibraryBookmark.test_case_id == test_case_id,
        ).execution_options(synchronize_session=False)
    )
    if result.rowcount:
        db.session.commit()
        return {"test_case_id": test_case_id, "bookmarked": False}

    db.session.add(LibraryBookmark(user_id=user_id, test_case_id=test_case_id))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("LibraryBookmark", "test_case_id", test_case_id)
    return {"test_case_id": test_case_id, "bookmarked": True}


def list_bookmarks(user_id: str) -> list[dict]:
    """Bookmarks of one user, newest first."""
    rows = db.session.execute(
        select(LibraryBookmark)
        .where(LibraryBookmark.user_id == user_id)
        .order_by(LibraryBookmark.created_at.desc(), LibraryBookmark.id.desc())
    ).scalars().all()
    return [b.to_dict() for b in rows]
