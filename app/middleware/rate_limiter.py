"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies limits per route category, keyed by caller.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

LIBRARY_READ_LIMIT = "300/minute"
LIBRARY_WRITE_LIMIT = "60/minute"
AUTO_MATCH_LIMIT = "5/minute"


def rate_limit_key():
    """Dynamic rate limit key: user id if known, else remote IP."""
    user_id = getattr(g, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def _is_read():
    return flask_request.method in ("GET", "HEAD", "OPTIONS")


def _is_write():
    return not _is_read()


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, falling back to remote IP):
        - Library reads:    300/minute
        - Library writes:   60/minute  (POST/PUT/DELETE)
        - Auto-match:       5/minute   (full library scan)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("library")
    if bp:
        limiter.limit(LIBRARY_READ_LIMIT, key_func=rate_limit_key, exempt_when=_is_write)(bp)
        limiter.limit(LIBRARY_WRITE_LIMIT, key_func=rate_limit_key, exempt_when=_is_read)(bp)

        view = app.view_functions.get("library.run_auto_match")
        if view:
            app.view_functions["library.run_auto_match"] = limiter.limit(
                AUTO_MATCH_LIMIT, key_func=rate_limit_key,
            )(view)

    # Health check is never rate limited
    view = app.view_functions.get("health")
    if view:
        app.view_functions["health"] = limiter.exempt(view)

    app.logger.info(
        "Rate limiter configured — library read: %s, write: %s, auto-match: %s",
        LIBRARY_READ_LIMIT, LIBRARY_WRITE_LIMIT, AUTO_MATCH_LIMIT,
    )
