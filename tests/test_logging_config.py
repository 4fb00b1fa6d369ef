"""
tests/test_logging_config.py — Log formatting and request context stamping.

Covers:
    1.  JSON formatter emits context fields and skips absent ones
    2.  Readable formatter shows request id, user and test case id
    3.  RequestContextFilter copies request_id / user_id from the request
"""

import json
import logging

from app.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter


def _record(msg="Test case updated id=%s", args=(4,), **extra):
    record = logging.LogRecord("app.services.library_service", logging.INFO, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_includes_context_fields(self):
        record = _record(request_id="abc123", user_id="user-7", test_case_id=4)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Test case updated id=4"
        assert entry["level"] == "INFO"
        assert entry["request_id"] == "abc123"
        assert entry["user_id"] == "user-7"
        assert entry["test_case_id"] == 4
        assert "duration_ms" not in entry

    def test_readable_context_block(self):
        record = _record(request_id="abc123", user_id="user-7", test_case_id=4)

        line = ReadableFormatter(color=False).format(record)

        assert "app.services.library_service [abc123 user-7 tc=4]: Test case updated id=4" in line

    def test_readable_without_context(self):
        line = ReadableFormatter(color=False).format(_record())

        assert "app.services.library_service: Test case updated id=4" in line


class TestRequestContextFilter:
    def test_stamps_request_identity(self, app):
        with app.test_request_context("/api/v1/library/test-cases", headers={"X-User-Id": "user-7"}):
            app.preprocess_request()
            record = _record()

            assert RequestContextFilter().filter(record) is True

            assert record.user_id == "user-7"
            assert record.request_id

    def test_keeps_explicit_values(self, app):
        with app.test_request_context("/api/v1/library/test-cases", headers={"X-User-Id": "user-7"}):
            app.preprocess_request()
            record = _record(user_id="someone-else")

            RequestContextFilter().filter(record)

            assert record.user_id == "someone-else"

    def test_outside_request_is_untouched(self):
        record = _record()

        assert RequestContextFilter().filter(record) is True
        assert not hasattr(record, "user_id")
