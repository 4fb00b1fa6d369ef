"""
tests/test_event_bus.py — Domain event sink.

Covers:
    1.  In-memory publisher records JSON envelopes on the configured channel
    2.  A failing publisher is logged and reported, never raised
    3.  The in-memory recorder keeps only the newest envelopes
"""

import json

from app.services import event_bus


class _BrokenPublisher:
    def publish(self, channel, message):
        raise ConnectionError("redis down")


class TestEventBus:
    def test_publish_records_envelope(self, app):
        assert event_bus.publish("library.test.event", {"test_case_id": 4}) is True

        events = event_bus.published_events()
        assert len(events) == 1
        assert events[0]["event"] == "library.test.event"
        assert events[0]["data"] == {"test_case_id": 4}
        assert "timestamp" in events[0]

        channel, raw = event_bus._get_publisher().messages[0]
        assert channel == app.config.get("EVENT_CHANNEL", "library-events")
        assert json.loads(raw)["event"] == "library.test.event"

    def test_failing_publisher_returns_false(self, monkeypatch, caplog):
        monkeypatch.setattr(event_bus, "_publisher", _BrokenPublisher())

        assert event_bus.publish(event_bus.EVENT_SUGGESTION_REVIEWED, {"id": 1}) is False
        assert "Event publish failed" in caplog.text

    def test_reset_publisher(self):
        event_bus.publish("library.test.event", {})
        event_bus.reset_publisher()

        assert event_bus.published_events() == []

    def test_memory_recorder_is_bounded(self, monkeypatch):
        monkeypatch.setattr(event_bus, "_publisher", event_bus._MemoryPublisher(maxlen=3))

        for i in range(5):
            event_bus.publish("library.test.event", {"n": i})

        assert [e["data"]["n"] for e in event_bus.published_events()] == [2, 3, 4]
