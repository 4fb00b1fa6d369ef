"""
tests/test_library_catalog.py — Collections, test case CRUD, discussions, bookmarks, seed data.

Covers:
    1.  Collections: create, team + global listing with counts, update
    2.  Collection delete: block mode conflict, cascade mode hard delete
    3.  Test case create defaults, enum validation, unknown collection
    4.  Listing filters: status, priority, tags (any-of), search, pagination
    5.  Detail view: parsed steps/criteria, recent versions, counts, bookmark flag
    6.  Hard delete removes history, links, suggestions, discussions, bookmarks
    7.  Discussions: author-only edit, author-or-moderator delete
    8.  Bookmark toggle symmetry and per-user listing
    9.  Seed data is idempotent unless forced
    10. Primary-key lookups (plain and row-locked) and text field typing
"""

import pytest

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.library import (
    LibraryBookmark,
    LibraryDiscussion,
    LibrarySuggestion,
    LibraryTestCase,
    LibraryTestCaseLink,
    LibraryTestCaseTag,
    LibraryTestCaseVersion,
)
from app.services import library_matcher_service, library_service, library_suggestion_service
from app.services.helpers.lookups import get_or_raise
from app.services.library_seed_service import seed_library

USER = "user-1"
OTHER = "user-2"


# ═════════════════════════════════════════════════════════════════════════════
# Collections
# ═════════════════════════════════════════════════════════════════════════════


class TestCollections:
    def test_create_requires_name(self):
        with pytest.raises(ValidationError):
            library_service.create_collection({"name": " "}, author=USER)

    def test_team_listing_includes_global(self, make_test_case):
        global_col = library_service.create_collection({"name": "Global"}, author=USER)
        team_col = library_service.create_collection({"name": "Team A", "team_id": "team-a"}, author=USER)
        library_service.create_collection({"name": "Team B", "team_id": "team-b"}, author=USER)
        make_test_case(collection_id=team_col["id"])
        make_test_case(collection_id=team_col["id"])

        listed = library_service.list_collections(team_id="team-a")

        assert [c["name"] for c in listed] == ["Global", "Team A"]
        counts = {c["id"]: c["test_case_count"] for c in listed}
        assert counts == {global_col["id"]: 0, team_col["id"]: 2}
        assert len(library_service.list_collections()) == 3

    def test_update(self):
        col = library_service.create_collection({"name": "Old", "icon": "x"}, author=USER)

        updated = library_service.update_collection(col["id"], {"name": "New", "description": "d"})

        assert updated["name"] == "New"
        assert updated["description"] == "d"
        assert updated["icon"] == "x"

    def test_delete_blocked_when_not_empty(self, make_test_case):
        col = library_service.create_collection({"name": "Busy"}, author=USER)
        make_test_case(collection_id=col["id"])

        with pytest.raises(ConflictError):
            library_service.delete_collection(col["id"])
        assert library_service.get_collection(col["id"])["test_case_count"] == 1

    def test_delete_empty(self):
        col = library_service.create_collection({"name": "Empty"}, author=USER)

        assert library_service.delete_collection(col["id"]) == {"deleted": col["id"], "deleted_test_cases": 0}
        with pytest.raises(NotFoundError):
            library_service.get_collection(col["id"])

    def test_delete_cascade_mode(self, app, monkeypatch, make_test_case):
        monkeypatch.setitem(app.config, "LIBRARY_COLLECTION_DELETE_MODE", "cascade")
        col = library_service.create_collection({"name": "Doomed"}, author=USER)
        make_test_case(collection_id=col["id"])
        survivor = make_test_case()

        result = library_service.delete_collection(col["id"])

        assert result["deleted_test_cases"] == 1
        assert [tc.id for tc in LibraryTestCase.query.all()] == [survivor["id"]]


# ═════════════════════════════════════════════════════════════════════════════
# Test cases
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateTestCase:
    def test_defaults(self):
        tc = library_service.create_test_case({"title": "  Login test  "}, author=USER)

        assert tc["title"] == "Login test"
        assert tc["priority"] == "P2"
        assert tc["difficulty"] == "MEDIUM"
        assert tc["status"] == "DRAFT"
        assert tc["collection_id"] is None
        assert tc["created_by"] == USER

    @pytest.mark.parametrize("field,value", [
        ("priority", "P9"),
        ("difficulty", "TRIVIAL"),
        ("status", "DONE"),
    ])
    def test_invalid_enum(self, field, value):
        with pytest.raises(ValidationError):
            library_service.create_test_case({"title": "x", field: value}, author=USER)
        assert LibraryTestCase.query.count() == 0

    def test_missing_title(self):
        with pytest.raises(ValidationError):
            library_service.create_test_case({"description": "no title"}, author=USER)

    def test_unknown_collection(self):
        with pytest.raises(NotFoundError):
            library_service.create_test_case({"title": "x", "collection_id": 9999}, author=USER)

    def test_tags_deduplicated(self):
        tc = library_service.create_test_case(
            {"title": "x", "tags": ["smoke", " auth ", "smoke", ""]}, author=USER,
        )
        assert tc["tags"] == ["auth", "smoke"]


class TestListTestCases:
    def test_filters(self, make_test_case):
        smoke = make_test_case(title="Login smoke", status="ACTIVE", priority="P0", tags=["smoke"])
        make_test_case(title="Checkout", status="ACTIVE", priority="P1", tags=["checkout"])
        draft = make_test_case(title="Search", description="login related", tags=["search", "smoke"])

        assert library_service.list_test_cases(status="ACTIVE")["total"] == 2
        assert [t["id"] for t in library_service.list_test_cases(priority="P0")["items"]] == [smoke["id"]]
        assert {t["id"] for t in library_service.list_test_cases(tags="smoke,nope")["items"]} == {
            smoke["id"], draft["id"],
        }
        assert {t["id"] for t in library_service.list_test_cases(search="LOGIN")["items"]} == {
            smoke["id"], draft["id"],
        }

    def test_pagination_newest_first(self, make_test_case):
        created = [make_test_case() for _ in range(5)]

        page = library_service.list_test_cases(limit=2, offset=1)

        assert page["total"] == 5
        assert [t["id"] for t in page["items"]] == [created[3]["id"], created[2]["id"]]

    def test_invalid_filter(self):
        with pytest.raises(ValidationError):
            library_service.list_test_cases(status="BOGUS")


class TestDetailAndDelete:
    def test_detail(self, make_test_case):
        tc = make_test_case(
            steps="1. Open login page\n2) Enter credentials\n\nSubmit",
            expected_outcome="- Dashboard shown\n☐ Cookie set",
        )
        library_suggestion_service.create_suggestion(tc["id"], "IMPROVEMENT", "More steps", author=OTHER)
        library_service.add_discussion(tc["id"], "Looks good", author=OTHER)
        library_service.toggle_bookmark(tc["id"], USER)

        detail = library_service.get_test_case(tc["id"], user_id=USER)

        assert detail["parsed_steps"] == [
            {"num": 1, "text": "Open login page"},
            {"num": 2, "text": "Enter credentials"},
            {"num": 3, "text": "Submit"},
        ]
        assert detail["parsed_criteria"] == ["Dashboard shown", "Cookie set"]
        assert [v["version"] for v in detail["recent_versions"]] == [1]
        assert detail["counts"] == {"versions": 1, "pending_suggestions": 1, "discussions": 1, "links": 0}
        assert detail["is_bookmarked"] is True
        assert library_service.get_test_case(tc["id"], user_id=OTHER)["is_bookmarked"] is False

    def test_detail_unknown(self):
        with pytest.raises(NotFoundError):
            library_service.get_test_case(9999)

    def test_update_moves_collection_and_tags(self, make_test_case):
        col = library_service.create_collection({"name": "Target"}, author=USER)
        tc = make_test_case(tags=["a", "b"])

        updated = library_service.update_test_case(
            tc["id"], {"collection_id": col["id"], "tags": ["b", "c"]}, author=USER,
        )

        assert updated["collection_id"] == col["id"]
        assert updated["tags"] == ["b", "c"]
        assert LibraryTestCaseTag.query.count() == 2

    def test_hard_delete_cascades(self, make_test_case, make_automated_test):
        tc = make_test_case()
        library_service.update_test_case(tc["id"], {"title": "v2"}, author=USER)
        make_automated_test("auto-1", "whatever")
        library_matcher_service.link_test(tc["id"], "auto-1")
        library_suggestion_service.create_suggestion(tc["id"], "UPDATE", "x", author=OTHER)
        library_service.add_discussion(tc["id"], "comment", author=OTHER)
        library_service.toggle_bookmark(tc["id"], USER)

        library_service.delete_test_case(tc["id"])

        for model in (
            LibraryTestCase, LibraryTestCaseVersion, LibraryTestCaseLink,
            LibrarySuggestion, LibraryDiscussion, LibraryBookmark,
        ):
            assert model.query.count() == 0, model.__name__
        with pytest.raises(NotFoundError):
            library_service.delete_test_case(tc["id"])


# ═════════════════════════════════════════════════════════════════════════════
# Discussions
# ═════════════════════════════════════════════════════════════════════════════


class TestDiscussions:
    def test_oldest_first(self, make_test_case):
        tc = make_test_case()
        first = library_service.add_discussion(tc["id"], "first", author=USER)
        second = library_service.add_discussion(tc["id"], "second", author=OTHER)

        assert [d["id"] for d in library_service.list_discussions(tc["id"])] == [first["id"], second["id"]]

    def test_empty_content_rejected(self, make_test_case):
        tc = make_test_case()
        with pytest.raises(ValidationError):
            library_service.add_discussion(tc["id"], "", author=USER)

    def test_only_author_can_edit(self, make_test_case):
        tc = make_test_case()
        d = library_service.add_discussion(tc["id"], "orig", author=USER)

        with pytest.raises(ForbiddenError):
            library_service.update_discussion(d["id"], "hijack", user_id=OTHER)

        assert library_service.update_discussion(d["id"], "edited", user_id=USER)["content"] == "edited"

    def test_delete_by_author_or_moderator(self, make_test_case):
        tc = make_test_case()
        mine = library_service.add_discussion(tc["id"], "mine", author=USER)
        theirs = library_service.add_discussion(tc["id"], "theirs", author=USER)

        with pytest.raises(ForbiddenError):
            library_service.delete_discussion(theirs["id"], user_id=OTHER)

        library_service.delete_discussion(mine["id"], user_id=USER)
        library_service.delete_discussion(theirs["id"], user_id=OTHER, can_moderate=True)
        assert library_service.list_discussions(tc["id"]) == []


# ═════════════════════════════════════════════════════════════════════════════
# Bookmarks
# ═════════════════════════════════════════════════════════════════════════════


class TestBookmarks:
    def test_toggle_sequence(self, make_test_case):
        tc = make_test_case()
        counts = [LibraryBookmark.query.count()]

        for expected in (True, False, True, False):
            assert library_service.toggle_bookmark(tc["id"], USER)["bookmarked"] is expected
            counts.append(LibraryBookmark.query.count())

        assert counts == [0, 1, 0, 1, 0]

    def test_bookmarks_are_per_user(self, make_test_case):
        first = make_test_case()
        second = make_test_case()
        library_service.toggle_bookmark(first["id"], USER)
        library_service.toggle_bookmark(second["id"], USER)
        library_service.toggle_bookmark(first["id"], OTHER)

        mine = library_service.list_bookmarks(USER)
        assert [b["test_case_id"] for b in mine] == [second["id"], first["id"]]
        assert [b["test_case_id"] for b in library_service.list_bookmarks(OTHER)] == [first["id"]]

    def test_unknown_test_case(self):
        with pytest.raises(NotFoundError):
            library_service.toggle_bookmark(9999, USER)


# ═════════════════════════════════════════════════════════════════════════════
# Seed data
# ═════════════════════════════════════════════════════════════════════════════


class TestSeed:
    def test_seed_then_skip_then_force(self):
        result = seed_library("seed-user")

        assert result["skipped"] is False
        assert result["collections"] == 3
        assert LibraryTestCase.query.count() == result["test_cases"]
        login = LibraryTestCase.query.filter_by(title="User can log in with valid email and password").one()
        assert login.current_version == 2

        assert seed_library("seed-user") == {"skipped": True, "collections": 3}

        forced = seed_library("seed-user", force=True)
        assert forced["skipped"] is False
        assert LibraryTestCase.query.count() == forced["test_cases"]


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════


class TestLookups:
    def test_locked_lookup(self, make_test_case):
        tc = make_test_case(title="Locked")

        row = get_or_raise(LibraryTestCase, tc["id"], for_update=True)

        assert row.title == "Locked"

    def test_missing_row_names_model(self):
        with pytest.raises(NotFoundError, match="LibraryTestCase id=9999 not found"):
            get_or_raise(LibraryTestCase, 9999, for_update=True)

    def test_text_fields_reject_other_types(self):
        with pytest.raises(ValidationError) as exc:
            library_service.create_test_case({"title": "ok", "steps": ["a", "b"]}, author=USER)
        assert exc.value.details == {"steps": "list"}
        assert LibraryTestCase.query.count() == 0
