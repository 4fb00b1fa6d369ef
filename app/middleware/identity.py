"""
Identity Context Middleware — resolves the caller from upstream gateway headers.

Authentication happens in front of this service; the gateway forwards the
authenticated user as:

    X-User-Id:    opaque user id (required for every /api/v1/library request)
    X-User-Role:  ADMIN | MANAGER | TEAM_LEAD | MEMBER | VIEWER

The role → capability map lives here and nowhere else. Services receive
plain user ids and booleans (e.g. ``can_moderate``), never roles.

Chain order:
  identity.py  →  route handler (@require_library_manager where needed)

Usage:
    @library_bp.route("/test-cases", methods=["POST"])
    @require_library_manager
    def create_test_case():
        ...
"""

import functools
import logging

from flask import g, request

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Roles allowed to curate the library (create/edit/delete entries, review
# suggestions, run auto-match, moderate discussions)
LIBRARY_MANAGER_ROLES = frozenset({"ADMIN", "MANAGER", "TEAM_LEAD"})

IDENTITY_REQUIRED_PREFIXES = ("/api/v1/library",)


def can_manage_library(role):
    """Return True if the role may curate the library."""
    return (role or "").upper() in LIBRARY_MANAGER_ROLES


def current_user_id():
    return getattr(g, "user_id", None)


def init_identity_context(app):
    """Register the identity before_request hook."""

    @app.before_request
    def _identity_context():
        g.user_id = (request.headers.get("X-User-Id") or "").strip() or None
        g.user_role = (request.headers.get("X-User-Role") or "").strip().upper() or None
        g.can_manage_library = can_manage_library(g.user_role)

        if not request.path.startswith(IDENTITY_REQUIRED_PREFIXES):
            return None
        if request.method == "OPTIONS":
            return None

        if g.user_id is None:
            logger.info("Rejected anonymous request to %s", request.path)
            return api_error(E.AUTH_REQUIRED, "X-User-Id header is required")
        return None


def require_library_manager(f):
    """
    Decorator: require the caller to hold the can_manage_library capability.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not getattr(g, "can_manage_library", False):
            logger.warning(
                "User %s (role=%s) denied: can_manage_library required on %s",
                getattr(g, "user_id", None), getattr(g, "user_role", None), f.__name__,
            )
            return api_error(E.FORBIDDEN, "Permission denied", details={"required": "can_manage_library"})
        return f(*args, **kwargs)
    return decorated
