"""
tests/test_steps.py — Read-time parsing of steps and acceptance criteria.
"""

import pytest

from app.utils.steps import parse_criteria, parse_steps


class TestParseSteps:
    def test_numbered_prefixes_dropped_and_renumbered(self):
        raw = "3. Open login page\n7) Enter credentials\nSubmit"

        assert parse_steps(raw) == [
            {"num": 1, "text": "Open login page"},
            {"num": 2, "text": "Enter credentials"},
            {"num": 3, "text": "Submit"},
        ]

    def test_blank_lines_and_whitespace_ignored(self):
        assert parse_steps("\n  1.   Open app  \n\n   \n2.Close app\n") == [
            {"num": 1, "text": "Open app"},
            {"num": 2, "text": "Close app"},
        ]

    @pytest.mark.parametrize("raw", [None, "", "   \n  "])
    def test_empty(self, raw):
        assert parse_steps(raw) == []


class TestParseCriteria:
    def test_bullets_and_checkboxes_dropped(self):
        raw = "- Dashboard shown\n* Session cookie set\n☐ Audit entry written\nNo errors logged"

        assert parse_criteria(raw) == [
            "Dashboard shown",
            "Session cookie set",
            "Audit entry written",
            "No errors logged",
        ]

    def test_empty(self):
        assert parse_criteria(None) == []
        assert parse_criteria("\n\n") == []
