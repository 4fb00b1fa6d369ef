"""
Domain event sink — publishes notable library events for real-time broadcast.

Events (suggestion reviewed, version rolled back, auto-match completed) are
serialized as JSON envelopes:

    {"event": "library.suggestion.reviewed", "data": {...}, "timestamp": "..."}

Uses Redis pub/sub in production (REDIS_URL + EVENT_CHANNEL), falls back to
an in-memory recorder for development/testing. Delivery is the sink's
concern: a failed publish is logged and never propagates into the
transaction that produced the event.
"""

import json
import logging
from collections import deque
from datetime import datetime, timezone

from flask import current_app

logger = logging.getLogger(__name__)

EVENT_SUGGESTION_REVIEWED = "library.suggestion.reviewed"
EVENT_VERSION_ROLLED_BACK = "library.version.rolled_back"
EVENT_AUTO_MATCH_COMPLETED = "library.auto_match.completed"

# Oldest envelopes are dropped once the in-memory recorder holds this many
MEMORY_EVENT_LIMIT = 1000


# ── In-memory fallback ───────────────────────────────────────────────────


class _MemoryPublisher:
    """Keeps the most recent published messages so tests and dev tools can inspect them."""

    def __init__(self, maxlen=MEMORY_EVENT_LIMIT):
        self.messages = deque(maxlen=maxlen)  # (channel, message_json)

    def publish(self, channel, message):
        self.messages.append((channel, message))
        return 0

    def clear(self):
        self.messages.clear()


# ── Singleton publisher ──────────────────────────────────────────────────

_publisher = None


def _get_publisher():
    """Lazy-initialise Redis or fall back to the in-memory publisher."""
    global _publisher
    if _publisher is not None:
        return _publisher

    redis_url = current_app.config.get("REDIS_URL", "memory://")
    if redis_url and not redis_url.startswith("memory://"):
        import redis as _redis
        try:
            client = _redis.from_url(redis_url, decode_responses=True)
            client.ping()
            _publisher = client
            logger.info("Event bus: using Redis at %s", redis_url.split("@")[-1])
        except _redis.RedisError as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory event bus", exc)
            _publisher = _MemoryPublisher()
    else:
        _publisher = _MemoryPublisher()
    return _publisher


def reset_publisher():
    """Drop the cached publisher (tests, config reloads)."""
    global _publisher
    _publisher = None


def published_events():
    """Return decoded envelopes captured by the in-memory publisher."""
    pub = _get_publisher()
    if not isinstance(pub, _MemoryPublisher):
        return []
    return [json.loads(message) for _, message in pub.messages]


# ── Public API ───────────────────────────────────────────────────────────


def publish(event, data):
    """Publish a domain event. Returns True when the sink accepted it."""
    envelope = {
        "event": event,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    channel = current_app.config.get("EVENT_CHANNEL", "library-events")
    try:
        _get_publisher().publish(channel, json.dumps(envelope, default=str))
    except Exception as exc:
        logger.warning(
            "Event publish failed event=%s channel=%s: %s", event, channel, exc,
            extra={"event_type": event},
        )
        return False
    logger.debug("Event published event=%s channel=%s", event, channel, extra={"event_type": event})
    return True
