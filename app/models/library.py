"""
QA Test Case Library
Library domain models — curated test case catalog.

Models:
    - LibraryCollection:        named grouping of library test cases (team-scoped or global)
    - LibraryTestCase:          curated test specification (the catalog entry)
    - LibraryTestCaseTag:       tag set member of a test case
    - LibraryTestCaseVersion:   immutable content snapshot, one per version number
    - LibraryDependency:        "test case A requires test case B" edge
    - LibraryTestCaseLink:      correlation with an automated test (manual or auto-matched)
    - LibrarySuggestion:        moderated improvement proposal
    - LibraryDiscussion:        comment thread on a test case
    - LibraryBookmark:          per-user bookmark

Architecture ref:
    Collection ──1:N──▶ TestCase ──1:N──▶ Version
    TestCase ──N:M──▶ TestCase (dependencies)
    TestCase ──N:M──▶ AutomatedTest (links)
    TestCase ──1:N──▶ Suggestion / Discussion / Bookmark / Tag
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────

PRIORITIES = ("P0", "P1", "P2", "P3")

DIFFICULTIES = ("EASY", "MEDIUM", "HARD", "COMPLEX")

TEST_CASE_STATUSES = ("DRAFT", "ACTIVE", "DEPRECATED", "ARCHIVED")

SUGGESTION_TYPES = ("IMPROVEMENT", "BUG_REPORT", "UPDATE", "OBSOLETE")

SUGGESTION_STATUSES = ("PENDING", "ACCEPTED", "REJECTED")

# Fields whose change produces a new version snapshot
CONTENT_FIELDS = ("title", "description", "steps", "preconditions", "expected_outcome")

# ── Suggestion review state machine ──────────────────────────────────────
SUGGESTION_TRANSITIONS = {
    "PENDING":  ["ACCEPTED", "REJECTED"],
    "ACCEPTED": [],
    "REJECTED": [],
}


def validate_suggestion_transition(old_status, new_status):
    """Return True if transition is valid, False otherwise."""
    return new_status in SUGGESTION_TRANSITIONS.get(old_status, [])


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# COLLECTION
# ═════════════════════════════════════════════════════════════════════════════

class LibraryCollection(db.Model):
    """
    Named grouping of library test cases.

    team_id NULL means the collection is global and visible to every team.
    """

    __tablename__ = "library_collections"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    icon = db.Column(db.String(50), default="", comment="Emoji or icon key shown in the UI")
    team_id = db.Column(
        db.String(64), nullable=True, index=True,
        comment="Owning team; NULL = global collection",
    )
    created_by = db.Column(db.String(100), nullable=False)

    # ── Audit
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    test_cases = db.relationship(
        "LibraryTestCase", backref="collection", lazy="dynamic",
    )

    def to_dict(self, test_case_count=None):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "team_id": self.team_id,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if test_case_count is not None:
            result["test_case_count"] = test_case_count
        return result

    def __repr__(self):
        return f"<LibraryCollection {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class LibraryTestCase(db.Model):
    """
    Curated test specification in the library.

    current_version always equals the highest LibraryTestCaseVersion.version
    of this test case; it is advanced only by the version service.
    """

    __tablename__ = "library_test_cases"

    id = db.Column(db.Integer, primary_key=True)
    collection_id = db.Column(
        db.Integer, db.ForeignKey("library_collections.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    # ── Content (versioned)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    steps = db.Column(db.Text, default="", comment="Newline-delimited numbered steps")
    preconditions = db.Column(db.Text, default="")
    expected_outcome = db.Column(db.Text, default="", comment="Newline-delimited acceptance criteria")

    # ── Metadata (not versioned)
    priority = db.Column(db.String(2), default="P2", index=True, comment="P0 | P1 | P2 | P3")
    difficulty = db.Column(
        db.String(10), default="MEDIUM",
        comment="EASY | MEDIUM | HARD | COMPLEX",
    )
    status = db.Column(
        db.String(12), default="DRAFT", index=True,
        comment="DRAFT | ACTIVE | DEPRECATED | ARCHIVED",
    )
    current_version = db.Column(db.Integer, nullable=False, default=1)

    # ── Audit
    created_by = db.Column(db.String(100), nullable=False)
    updated_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Relationships
    tag_rows = db.relationship(
        "LibraryTestCaseTag", backref="test_case", lazy="select",
        cascade="all, delete-orphan",
        order_by="LibraryTestCaseTag.tag",
    )
    versions = db.relationship(
        "LibraryTestCaseVersion", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    dependencies = db.relationship(
        "LibraryDependency",
        foreign_keys="LibraryDependency.test_case_id",
        backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    dependents = db.relationship(
        "LibraryDependency",
        foreign_keys="LibraryDependency.depends_on_id",
        backref="depends_on", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    links = db.relationship(
        "LibraryTestCaseLink", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    suggestions = db.relationship(
        "LibrarySuggestion", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    discussions = db.relationship(
        "LibraryDiscussion", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    bookmarks = db.relationship(
        "LibraryBookmark", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def tags(self):
        return [t.tag for t in self.tag_rows]

    def content(self):
        """Return the versioned content fields as a dict."""
        return {f: getattr(self, f) for f in CONTENT_FIELDS}

    def to_dict(self):
        return {
            "id": self.id,
            "collection_id": self.collection_id,
            "title": self.title,
            "description": self.description,
            "steps": self.steps,
            "preconditions": self.preconditions,
            "expected_outcome": self.expected_outcome,
            "priority": self.priority,
            "difficulty": self.difficulty,
            "status": self.status,
            "tags": self.tags,
            "current_version": self.current_version,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_summary(self):
        """Short form used when a test case is embedded in another payload."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "collection_id": self.collection_id,
        }

    def __repr__(self):
        return f"<LibraryTestCase {self.id}: {self.title[:30]} v{self.current_version}>"


class LibraryTestCaseTag(db.Model):
    """One tag of a test case's tag set."""

    __tablename__ = "library_test_case_tags"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    tag = db.Column(db.String(50), nullable=False, index=True)

    __table_args__ = (
        db.UniqueConstraint("test_case_id", "tag", name="uq_library_tc_tag"),
    )

    def __repr__(self):
        return f"<LibraryTestCaseTag #{self.test_case_id} {self.tag}>"


# ═════════════════════════════════════════════════════════════════════════════
# VERSION SNAPSHOT
# ═════════════════════════════════════════════════════════════════════════════

class LibraryTestCaseVersion(db.Model):
    """
    Immutable content snapshot of a test case.

    Append-only: rows are inserted by the version service and removed only
    when the owning test case is deleted.
    """

    __tablename__ = "library_test_case_versions"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    steps = db.Column(db.Text, default="")
    preconditions = db.Column(db.Text, default="")
    expected_outcome = db.Column(db.Text, default="")
    change_notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    # ── One snapshot per (test case, version)
    __table_args__ = (
        db.UniqueConstraint("test_case_id", "version", name="uq_library_tc_version"),
    )

    def content(self):
        return {f: getattr(self, f) for f in CONTENT_FIELDS}

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "version": self.version,
            "title": self.title,
            "description": self.description,
            "steps": self.steps,
            "preconditions": self.preconditions,
            "expected_outcome": self.expected_outcome,
            "change_notes": self.change_notes,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<LibraryTestCaseVersion #{self.test_case_id} v{self.version}>"


# ═════════════════════════════════════════════════════════════════════════════
# DEPENDENCY EDGE
# ═════════════════════════════════════════════════════════════════════════════

class LibraryDependency(db.Model):
    """
    Directed edge: test_case_id requires depends_on_id.

    Both columns are indexed so forward (dependencies) and reverse
    (dependents) adjacency are single index scans.
    """

    __tablename__ = "library_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    depends_on_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("test_case_id", "depends_on_id", name="uq_library_dependency"),
        db.CheckConstraint("test_case_id <> depends_on_id", name="ck_library_dependency_no_self"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "depends_on_id": self.depends_on_id,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<LibraryDependency #{self.test_case_id} → #{self.depends_on_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# MATCH LINK
# ═════════════════════════════════════════════════════════════════════════════

class LibraryTestCaseLink(db.Model):
    """
    Correlation between a library test case and an automated test.

    score is set only for auto-matched links (0–100).
    """

    __tablename__ = "library_test_case_links"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    automated_test_id = db.Column(
        db.String(64), db.ForeignKey("automated_tests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    auto_matched = db.Column(db.Boolean, nullable=False, default=False)
    score = db.Column(db.Integer, nullable=True, comment="Similarity 0-100, auto matches only")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    automated_test = db.relationship("AutomatedTest", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("test_case_id", "automated_test_id", name="uq_library_tc_link"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "automated_test_id": self.automated_test_id,
            "auto_matched": self.auto_matched,
            "score": self.score,
            "automated_test": self.automated_test.to_dict() if self.automated_test else None,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        kind = f"auto:{self.score}" if self.auto_matched else "manual"
        return f"<LibraryTestCaseLink #{self.test_case_id} ↔ {self.automated_test_id} ({kind})>"


# ═════════════════════════════════════════════════════════════════════════════
# SUGGESTION
# ═════════════════════════════════════════════════════════════════════════════

class LibrarySuggestion(db.Model):
    """
    Improvement proposal attached to a test case.

    Lifecycle: PENDING → ACCEPTED | REJECTED (terminal). Accepting does not
    modify the test case; an editor applies the change through a normal edit.
    """

    __tablename__ = "library_suggestions"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(
        db.String(20), nullable=False,
        comment="IMPROVEMENT | BUG_REPORT | UPDATE | OBSOLETE",
    )
    content = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(10), nullable=False, default="PENDING", index=True)

    created_by = db.Column(db.String(100), nullable=False)
    reviewed_by = db.Column(db.String(100), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self, include_test_case=False):
        result = {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "type": self.type,
            "content": self.content,
            "status": self.status,
            "created_by": self.created_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "review_note": self.review_note,
            "created_at": _iso(self.created_at),
        }
        if include_test_case:
            result["test_case"] = self.test_case.to_summary() if self.test_case else None
        return result

    def __repr__(self):
        return f"<LibrarySuggestion {self.id}: #{self.test_case_id} {self.type} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# DISCUSSION
# ═════════════════════════════════════════════════════════════════════════════

class LibraryDiscussion(db.Model):
    """Comment on a test case. Editable by its author only."""

    __tablename__ = "library_discussions"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    content = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "content": self.content,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<LibraryDiscussion {self.id}: #{self.test_case_id} by {self.created_by}>"


# ═════════════════════════════════════════════════════════════════════════════
# BOOKMARK
# ═════════════════════════════════════════════════════════════════════════════

class LibraryBookmark(db.Model):
    """Existence of a row means the user bookmarked the test case."""

    __tablename__ = "library_bookmarks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(100), nullable=False, index=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "test_case_id", name="uq_library_bookmark"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "test_case_id": self.test_case_id,
            "test_case": self.test_case.to_summary() if self.test_case else None,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<LibraryBookmark {self.user_id} → #{self.test_case_id}>"
