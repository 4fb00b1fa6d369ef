"""
QA Test Case Library
Blueprint registry and shared request helpers.
"""

from flask import request


def pagination_args(default_limit=20, max_limit=100):
    """Read limit/offset pagination from the query string.

    Query params:
        limit  — max items (default 20, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def bool_arg(name, default=False):
    """Parse a boolean query parameter ("1", "true", "yes" are truthy)."""
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")
