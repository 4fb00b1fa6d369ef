"""Test case library — initial schema

Revision ID: a1c4e8f20b11
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "a1c4e8f20b11"
down_revision = None
branch_labels = None
depends_on = None


def _tc_fk():
    return sa.Column(
        "test_case_id", sa.Integer(),
        sa.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )


def upgrade():
    # ── Automated tests (written by CI ingestion) ──
    op.create_table(
        "automated_tests",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("file_path", sa.String(500), server_default=""),
        sa.Column("team_id", sa.String(64), nullable=True, index=True),
        sa.Column("last_executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )

    # ── Collections ──
    op.create_table(
        "library_collections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("icon", sa.String(50), server_default=""),
        sa.Column("team_id", sa.String(64), nullable=True, index=True),
        sa.Column("created_by", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    # ── Test cases ──
    op.create_table(
        "library_test_cases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "collection_id", sa.Integer(),
            sa.ForeignKey("library_collections.id", ondelete="SET NULL"),
            nullable=True, index=True,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("steps", sa.Text(), server_default=""),
        sa.Column("preconditions", sa.Text(), server_default=""),
        sa.Column("expected_outcome", sa.Text(), server_default=""),
        sa.Column("priority", sa.String(2), server_default="P2", index=True),
        sa.Column("difficulty", sa.String(10), server_default="MEDIUM"),
        sa.Column("status", sa.String(12), server_default="DRAFT", index=True),
        sa.Column("current_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(100), nullable=False),
        sa.Column("updated_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "library_test_case_tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tc_fk(),
        sa.Column("tag", sa.String(50), nullable=False, index=True),
        sa.UniqueConstraint("test_case_id", "tag", name="uq_library_tc_tag"),
    )

    # ── Immutable version snapshots ──
    op.create_table(
        "library_test_case_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tc_fk(),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), server_default=""),
        sa.Column("steps", sa.Text(), server_default=""),
        sa.Column("preconditions", sa.Text(), server_default=""),
        sa.Column("expected_outcome", sa.Text(), server_default=""),
        sa.Column("change_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("test_case_id", "version", name="uq_library_tc_version"),
    )

    # ── Dependency graph ──
    op.create_table(
        "library_dependencies",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tc_fk(),
        sa.Column(
            "depends_on_id", sa.Integer(),
            sa.ForeignKey("library_test_cases.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("test_case_id", "depends_on_id", name="uq_library_dependency"),
        sa.CheckConstraint("test_case_id <> depends_on_id", name="ck_library_dependency_no_self"),
    )

    # ── Automation links ──
    op.create_table(
        "library_test_case_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tc_fk(),
        sa.Column(
            "automated_test_id", sa.String(64),
            sa.ForeignKey("automated_tests.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("auto_matched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("test_case_id", "automated_test_id", name="uq_library_tc_link"),
    )

    # ── Collaboration ──
    op.create_table(
        "library_suggestions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tc_fk(),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="PENDING", index=True),
        sa.Column("created_by", sa.String(100), nullable=False),
        sa.Column("reviewed_by", sa.String(100), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "library_discussions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tc_fk(),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "library_bookmarks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False, index=True),
        _tc_fk(),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("user_id", "test_case_id", name="uq_library_bookmark"),
    )


def downgrade():
    for table in (
        "library_bookmarks",
        "library_discussions",
        "library_suggestions",
        "library_test_case_links",
        "library_dependencies",
        "library_test_case_versions",
        "library_test_case_tags",
        "library_test_cases",
        "library_collections",
        "automated_tests",
    ):
        op.drop_table(table)
