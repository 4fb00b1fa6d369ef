"""
tests/test_library_coverage.py — Coverage statistics and gap detection.

Covers:
    1.  Totals, zero-filled status/priority breakdown, linked/unlinked counts
    2.  Coverage % over ACTIVE test cases only; 0 when none are ACTIVE
    3.  Collection scoping and unknown collection
    4.  Gaps: unlinked and stale reasons, non-ACTIVE excluded, ordering
    5.  Gap monotonicity: a larger threshold never yields more gaps
    6.  Negative threshold rejected
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.services import library_matcher_service as matcher
from app.services import library_service
from app.services.library_coverage_service import coverage_gaps, coverage_stats

NOW = datetime.now(timezone.utc)


def _days_ago(days):
    return NOW - timedelta(days=days)


class TestStats:
    def test_empty_library(self):
        stats = coverage_stats()

        assert stats["total"] == 0
        assert stats["coverage"] == 0
        assert stats["by_status"] == {"DRAFT": 0, "ACTIVE": 0, "DEPRECATED": 0, "ARCHIVED": 0}
        assert stats["by_priority"] == {"P0": 0, "P1": 0, "P2": 0, "P3": 0}

    def test_counts_and_coverage(self, make_test_case, make_automated_test):
        linked = make_test_case(status="ACTIVE", priority="P0")
        make_test_case(status="ACTIVE", priority="P1")
        draft_linked = make_test_case(status="DRAFT")
        make_automated_test("auto-1", "One")
        make_automated_test("auto-2", "Two")
        matcher.link_test(linked["id"], "auto-1")
        matcher.link_test(draft_linked["id"], "auto-2")

        stats = coverage_stats()

        assert stats["total"] == 3
        assert stats["linked"] == 2
        assert stats["unlinked"] == 1
        assert stats["active"] == 2
        assert stats["active_linked"] == 1
        assert stats["coverage"] == 50
        assert stats["by_status"]["ACTIVE"] == 2
        assert stats["by_status"]["DRAFT"] == 1
        assert stats["by_priority"] == {"P0": 1, "P1": 1, "P2": 1, "P3": 0}

    def test_coverage_rounds(self, make_test_case, make_automated_test):
        first = make_test_case(status="ACTIVE")
        make_test_case(status="ACTIVE")
        make_test_case(status="ACTIVE")
        make_automated_test("auto-1", "One")
        matcher.link_test(first["id"], "auto-1")

        assert coverage_stats()["coverage"] == 33

    def test_no_active_entries(self, make_test_case, make_automated_test):
        tc = make_test_case(status="DRAFT")
        make_automated_test("auto-1", "One")
        matcher.link_test(tc["id"], "auto-1")

        assert coverage_stats()["coverage"] == 0

    def test_collection_scope(self, make_test_case):
        col = library_service.create_collection({"name": "Checkout"}, author="u1")
        make_test_case(collection_id=col["id"], status="ACTIVE")
        make_test_case(status="ACTIVE")

        assert coverage_stats(collection_id=col["id"])["total"] == 1
        assert coverage_stats()["total"] == 2

        with pytest.raises(NotFoundError):
            coverage_stats(collection_id=9999)


class TestGaps:
    def test_reasons(self, make_test_case, make_automated_test):
        unlinked = make_test_case(title="Unlinked", status="ACTIVE")
        never_run = make_test_case(title="Never run", status="ACTIVE")
        stale = make_test_case(title="Stale", status="ACTIVE")
        fresh = make_test_case(title="Fresh", status="ACTIVE")
        make_test_case(title="Draft", status="DRAFT")
        make_automated_test("never", "never", last_executed_at=None)
        make_automated_test("old", "old", last_executed_at=_days_ago(10))
        make_automated_test("new", "new", last_executed_at=_days_ago(1))
        matcher.link_test(never_run["id"], "never")
        matcher.link_test(stale["id"], "old")
        matcher.link_test(fresh["id"], "new")

        gaps = {g["id"]: g["reason"] for g in coverage_gaps(older_than_days=7, now=NOW)}

        assert gaps == {
            unlinked["id"]: "unlinked",
            never_run["id"]: "stale",
            stale["id"]: "stale",
        }

    def test_one_fresh_link_is_enough(self, make_test_case, make_automated_test):
        tc = make_test_case(status="ACTIVE")
        make_automated_test("old", "old", last_executed_at=_days_ago(30))
        make_automated_test("new", "new", last_executed_at=_days_ago(2))
        matcher.link_test(tc["id"], "old")
        matcher.link_test(tc["id"], "new")

        assert coverage_gaps(older_than_days=7, now=NOW) == []

    def test_ordered_by_priority_then_created(self, make_test_case):
        low = make_test_case(status="ACTIVE", priority="P3")
        first_p0 = make_test_case(status="ACTIVE", priority="P0")
        second_p0 = make_test_case(status="ACTIVE", priority="P0")

        ids = [g["id"] for g in coverage_gaps(now=NOW)]
        assert ids == [first_p0["id"], second_p0["id"], low["id"]]

    def test_monotonic_in_threshold(self, make_test_case, make_automated_test):
        for i, days in enumerate((0.5, 3, 8, 20, 45)):
            tc = make_test_case(status="ACTIVE")
            make_automated_test(f"auto-{i}", f"t{i}", last_executed_at=_days_ago(days))
            matcher.link_test(tc["id"], f"auto-{i}")
        make_test_case(status="ACTIVE")

        counts = [len(coverage_gaps(older_than_days=d, now=NOW)) for d in (0, 1, 7, 14, 30, 60)]

        assert counts == sorted(counts, reverse=True)
        assert counts[0] == 6
        assert counts[-1] == 1

    def test_negative_threshold(self):
        with pytest.raises(ValidationError):
            coverage_gaps(older_than_days=-1)

    def test_unknown_collection(self):
        with pytest.raises(NotFoundError):
            coverage_gaps(collection_id=9999)
