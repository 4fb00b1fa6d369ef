"""Library blueprint — curated test case catalog API.

URL prefix: /api/v1/library

Identity comes from the X-User-Id / X-User-Role gateway headers (see
middleware/identity.py). Reads are open to any identified caller; curation
routes carry @require_library_manager. Suggestions, discussions and bookmarks
are open to every identified caller; discussion delete by a non-author needs
the manager capability, passed to the service as ``can_moderate``.

Routes:
    GET    /collections                               — team + global collections
    POST   /collections                               — create            [manager]
    GET    /collections/<id>                          — get
    PUT    /collections/<id>                          — update            [manager]
    DELETE /collections/<id>                          — delete            [manager]

    GET    /test-cases                                — filtered list
    POST   /test-cases                                — create (v1)       [manager]
    GET    /test-cases/<id>                           — detail
    PUT    /test-cases/<id>                           — update            [manager]
    DELETE /test-cases/<id>                           — delete            [manager]

    GET    /test-cases/<id>/versions                  — history, newest first
    GET    /test-cases/<id>/versions/<v>              — one snapshot
    POST   /test-cases/<id>/rollback                  — restore as new v  [manager]

    GET    /test-cases/<id>/dependencies              — prerequisites
    POST   /test-cases/<id>/dependencies              — add edge          [manager]
    DELETE /test-cases/<id>/dependencies/<dep_id>     — remove edge       [manager]
    GET    /test-cases/<id>/dependents                — reverse edges

    GET    /test-cases/<id>/suggestions               — suggestions of one entry
    POST   /test-cases/<id>/suggestions               — propose
    GET    /suggestions                               — moderation queue
    PUT    /suggestions/<id>/review                   — accept / reject   [manager]

    GET    /test-cases/<id>/discussions               — comments
    POST   /test-cases/<id>/discussions               — comment
    PUT    /discussions/<id>                          — edit own comment
    DELETE /discussions/<id>                          — delete own / moderate

    POST   /test-cases/<id>/bookmark                  — toggle bookmark
    GET    /bookmarks                                 — my bookmarks

    POST   /auto-match                                — batch title match [manager]
    GET    /test-cases/<id>/match-suggestions         — near-miss candidates
    GET    /test-cases/<id>/links                     — linked automated tests
    POST   /test-cases/<id>/links                     — manual link       [manager]
    DELETE /test-cases/<id>/links/<test_id>           — unlink            [manager]

    GET    /coverage                                  — coverage stats
    GET    /gaps                                      — coverage gaps
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.blueprints import bool_arg, pagination_args
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.middleware.identity import current_user_id, require_library_manager
from app.services import (
    library_coverage_service,
    library_dependency_service,
    library_matcher_service,
    library_service,
    library_suggestion_service,
    library_version_service,
)
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

library_bp = Blueprint("library", __name__, url_prefix="/api/v1/library")


# ── Error handlers ────────────────────────────────────────────────────────────


@library_bp.errorhandler(NotFoundError)
def _handle_not_found(error):
    return api_error(E.NOT_FOUND, str(error))


@library_bp.errorhandler(ValidationError)
def _handle_validation(error):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@library_bp.errorhandler(ConflictError)
def _handle_conflict(error):
    return api_error(E.CONFLICT, str(error), details={"field": error.field, "value": error.value})


@library_bp.errorhandler(ForbiddenError)
def _handle_forbidden(error):
    return api_error(E.FORBIDDEN, str(error))


@library_bp.errorhandler(Exception)
def _handle_unexpected(error):
    # HTTP errors (405, 429, aborts) keep their own status
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unhandled error in library blueprint: %s", error)
    return api_error(E.INTERNAL, "Internal server error")


# ── Request helpers ───────────────────────────────────────────────────────────


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int_field(data: dict, field: str) -> int:
    value = data.get(field)
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value})


def _int_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={name: raw})


# ═════════════════════════════════════════════════════════════════════════════
# Collections
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/collections", methods=["GET"])
def list_collections():
    """Collections of ?team_id= plus global ones (all when team_id is omitted)."""
    return jsonify(library_service.list_collections(team_id=request.args.get("team_id"))), 200


@library_bp.route("/collections", methods=["POST"])
@require_library_manager
def create_collection():
    """Body: { name, description?, icon?, team_id? }"""
    return jsonify(library_service.create_collection(_body(), author=current_user_id())), 201


@library_bp.route("/collections/<int:collection_id>", methods=["GET"])
def get_collection(collection_id: int):
    return jsonify(library_service.get_collection(collection_id)), 200


@library_bp.route("/collections/<int:collection_id>", methods=["PUT"])
@require_library_manager
def update_collection(collection_id: int):
    return jsonify(library_service.update_collection(collection_id, _body())), 200


@library_bp.route("/collections/<int:collection_id>", methods=["DELETE"])
@require_library_manager
def delete_collection(collection_id: int):
    """Blocked (409) while non-empty unless LIBRARY_COLLECTION_DELETE_MODE=cascade."""
    return jsonify(library_service.delete_collection(collection_id)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Test cases
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/test-cases", methods=["GET"])
def list_test_cases():
    """Filtered list.

    Query params:
        collection_id, status, priority
        tags    — comma separated, matches any
        search  — substring of title or description
        limit / offset
    """
    limit, offset = pagination_args()
    result = library_service.list_test_cases(
        collection_id=_int_arg("collection_id"),
        status=request.args.get("status") or None,
        priority=request.args.get("priority") or None,
        tags=request.args.get("tags") or None,
        search=request.args.get("search") or None,
        limit=limit,
        offset=offset,
    )
    return jsonify(result), 200


@library_bp.route("/test-cases", methods=["POST"])
@require_library_manager
def create_test_case():
    """Body: { title, description?, steps?, preconditions?, expected_outcome?,
               priority?, difficulty?, status?, tags?, collection_id? }"""
    return jsonify(library_service.create_test_case(_body(), author=current_user_id())), 201


@library_bp.route("/test-cases/<int:test_case_id>", methods=["GET"])
def get_test_case(test_case_id: int):
    return jsonify(library_service.get_test_case(test_case_id, user_id=current_user_id())), 200


@library_bp.route("/test-cases/<int:test_case_id>", methods=["PUT"])
@require_library_manager
def update_test_case(test_case_id: int):
    """Body: any subset of fields plus change_notes? and expected_version?"""
    return jsonify(
        library_service.update_test_case(test_case_id, _body(), author=current_user_id())
    ), 200


@library_bp.route("/test-cases/<int:test_case_id>", methods=["DELETE"])
@require_library_manager
def delete_test_case(test_case_id: int):
    library_service.delete_test_case(test_case_id)
    return "", 204


# ── Versions ──────────────────────────────────────────────────────────────────


@library_bp.route("/test-cases/<int:test_case_id>/versions", methods=["GET"])
def list_versions(test_case_id: int):
    limit, offset = pagination_args()
    return jsonify(library_version_service.list_versions(test_case_id, limit=limit, offset=offset)), 200


@library_bp.route("/test-cases/<int:test_case_id>/versions/<int:version>", methods=["GET"])
def get_version(test_case_id: int, version: int):
    return jsonify(library_version_service.get_version(test_case_id, version).to_dict()), 200


@library_bp.route("/test-cases/<int:test_case_id>/rollback", methods=["POST"])
@require_library_manager
def rollback(test_case_id: int):
    """Body: { version }"""
    version = _int_field(_body(), "version")
    return jsonify(library_version_service.rollback(test_case_id, version, author=current_user_id())), 200


# ── Dependencies ──────────────────────────────────────────────────────────────


@library_bp.route("/test-cases/<int:test_case_id>/dependencies", methods=["GET"])
def list_dependencies(test_case_id: int):
    """Query params: include_archived (default false)"""
    return jsonify(library_dependency_service.dependencies_of(
        test_case_id, include_archived=bool_arg("include_archived"),
    )), 200


@library_bp.route("/test-cases/<int:test_case_id>/dependencies", methods=["POST"])
@require_library_manager
def add_dependency(test_case_id: int):
    """Body: { depends_on_id }"""
    depends_on_id = _int_field(_body(), "depends_on_id")
    return jsonify(library_dependency_service.add_dependency(test_case_id, depends_on_id)), 201


@library_bp.route("/test-cases/<int:test_case_id>/dependencies/<int:depends_on_id>", methods=["DELETE"])
@require_library_manager
def remove_dependency(test_case_id: int, depends_on_id: int):
    library_dependency_service.remove_dependency(test_case_id, depends_on_id)
    return "", 204


@library_bp.route("/test-cases/<int:test_case_id>/dependents", methods=["GET"])
def list_dependents(test_case_id: int):
    return jsonify(library_dependency_service.dependents_of(
        test_case_id, include_archived=bool_arg("include_archived"),
    )), 200


# ═════════════════════════════════════════════════════════════════════════════
# Suggestions
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/test-cases/<int:test_case_id>/suggestions", methods=["GET"])
def list_entry_suggestions(test_case_id: int):
    limit, offset = pagination_args()
    return jsonify(library_suggestion_service.list_for_entry(
        test_case_id, status=request.args.get("status") or None, limit=limit, offset=offset,
    )), 200


@library_bp.route("/test-cases/<int:test_case_id>/suggestions", methods=["POST"])
def create_suggestion(test_case_id: int):
    """Body: { type, content }"""
    data = _body()
    return jsonify(library_suggestion_service.create_suggestion(
        test_case_id, data.get("type"), data.get("content"), author=current_user_id(),
    )), 201


@library_bp.route("/suggestions", methods=["GET"])
def list_suggestions():
    """Query params: status?, include_archived?, limit / offset"""
    limit, offset = pagination_args()
    return jsonify(library_suggestion_service.list_all(
        status=request.args.get("status") or None,
        include_archived=bool_arg("include_archived"),
        limit=limit,
        offset=offset,
    )), 200


@library_bp.route("/suggestions/<int:suggestion_id>/review", methods=["PUT"])
@require_library_manager
def review_suggestion(suggestion_id: int):
    """Body: { outcome: ACCEPTED | REJECTED, note? }"""
    data = _body()
    return jsonify(library_suggestion_service.review_suggestion(
        suggestion_id, data.get("outcome"), reviewer=current_user_id(), note=data.get("note"),
    )), 200


# ═════════════════════════════════════════════════════════════════════════════
# Discussions
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/test-cases/<int:test_case_id>/discussions", methods=["GET"])
def list_discussions(test_case_id: int):
    return jsonify(library_service.list_discussions(test_case_id)), 200


@library_bp.route("/test-cases/<int:test_case_id>/discussions", methods=["POST"])
def add_discussion(test_case_id: int):
    """Body: { content }"""
    return jsonify(library_service.add_discussion(
        test_case_id, _body().get("content"), author=current_user_id(),
    )), 201


@library_bp.route("/discussions/<int:discussion_id>", methods=["PUT"])
def update_discussion(discussion_id: int):
    """Body: { content }"""
    return jsonify(library_service.update_discussion(
        discussion_id, _body().get("content"), user_id=current_user_id(),
    )), 200


@library_bp.route("/discussions/<int:discussion_id>", methods=["DELETE"])
def delete_discussion(discussion_id: int):
    library_service.delete_discussion(
        discussion_id, user_id=current_user_id(), can_moderate=g.can_manage_library,
    )
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# Bookmarks
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/test-cases/<int:test_case_id>/bookmark", methods=["POST"])
def toggle_bookmark(test_case_id: int):
    return jsonify(library_service.toggle_bookmark(test_case_id, user_id=current_user_id())), 200


@library_bp.route("/bookmarks", methods=["GET"])
def list_bookmarks():
    return jsonify(library_service.list_bookmarks(current_user_id())), 200


# ═════════════════════════════════════════════════════════════════════════════
# Matching
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/auto-match", methods=["POST"])
@require_library_manager
def run_auto_match():
    """Body: { threshold? } — defaults to LIBRARY_MATCH_THRESHOLD."""
    data = _body()
    threshold = _int_field(data, "threshold") if data.get("threshold") is not None else None
    if threshold is not None and not 0 <= threshold <= 100:
        raise ValidationError("threshold must be between 0 and 100", details={"threshold": threshold})
    return jsonify(library_matcher_service.auto_match(threshold=threshold)), 200


@library_bp.route("/test-cases/<int:test_case_id>/match-suggestions", methods=["GET"])
def match_suggestions(test_case_id: int):
    """Query params: limit? (default LIBRARY_MATCH_SUGGESTION_LIMIT)"""
    limit = _int_arg("limit", current_app.config.get("LIBRARY_MATCH_SUGGESTION_LIMIT", 5))
    return jsonify(library_matcher_service.suggest_matches(test_case_id, limit=max(limit, 1))), 200


@library_bp.route("/test-cases/<int:test_case_id>/links", methods=["GET"])
def list_links(test_case_id: int):
    return jsonify(library_matcher_service.list_links(test_case_id)), 200


@library_bp.route("/test-cases/<int:test_case_id>/links", methods=["POST"])
@require_library_manager
def link_test(test_case_id: int):
    """Body: { automated_test_id }"""
    automated_test_id = str(_body().get("automated_test_id") or "").strip()
    if not automated_test_id:
        raise ValidationError("automated_test_id is required", details={"automated_test_id": "required"})
    return jsonify(library_matcher_service.link_test(test_case_id, automated_test_id)), 201


@library_bp.route("/test-cases/<int:test_case_id>/links/<test_id>", methods=["DELETE"])
@require_library_manager
def unlink_test(test_case_id: int, test_id: str):
    library_matcher_service.unlink_test(test_case_id, test_id)
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# Coverage
# ═════════════════════════════════════════════════════════════════════════════


@library_bp.route("/coverage", methods=["GET"])
def coverage():
    """Query params: collection_id?"""
    return jsonify(library_coverage_service.coverage_stats(collection_id=_int_arg("collection_id"))), 200


@library_bp.route("/gaps", methods=["GET"])
def gaps():
    """Query params: older_than_days? (default LIBRARY_GAP_DEFAULT_DAYS), collection_id?"""
    older_than_days = _int_arg("older_than_days", current_app.config.get("LIBRARY_GAP_DEFAULT_DAYS", 7))
    return jsonify(library_coverage_service.coverage_gaps(
        older_than_days=older_than_days, collection_id=_int_arg("collection_id"),
    )), 200
