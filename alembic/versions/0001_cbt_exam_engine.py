"""cbt exam engine schema

Revision ID: 0001_cbt
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_cbt"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "test_series",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("access_type", sa.String(length=8), nullable=False),
        sa.Column("free_quota", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "tests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("series_id", sa.Integer(), sa.ForeignKey("test_series.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("test_name", sa.String(length=200), nullable=False),
        sa.Column("duration_in_seconds", sa.Integer(), nullable=False),
        sa.Column("positive_marks", sa.Float(), nullable=True),
        sa.Column("negative_marks", sa.Float(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("cutoffs", sa.JSON(), nullable=True),
    )
    op.create_index("ix_tests_series_id", "tests", ["series_id"])

    op.create_table(
        "entitlements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("item_type", sa.String(length=32), nullable=False),
        sa.Column("item_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_entitlements_user_id", "entitlements", ["user_id"])

    op.create_table(
        "attempts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("test_series_id", sa.Integer(), sa.ForeignKey("test_series.id"), nullable=False),
        sa.Column("test_id", sa.Integer(), sa.ForeignKey("tests.id"), nullable=False),
        sa.Column("is_admin_attempt", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("result_generated", sa.Boolean(), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("correct", sa.Integer(), nullable=True),
        sa.Column("incorrect", sa.Integer(), nullable=True),
        sa.Column("unattempted", sa.Integer(), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("percentage", sa.Float(), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "uq_attempts_user_series_test",
        "attempts",
        ["user_id", "test_series_id", "test_id"],
        unique=True,
        sqlite_where=sa.text("is_admin_attempt = 0"),
        postgresql_where=sa.text("is_admin_attempt = false"),
    )
    op.create_index("ix_attempts_status", "attempts", ["status"])

    op.create_table(
        "attempt_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("attempt_id", sa.Integer(), sa.ForeignKey("attempts.id"), nullable=False),
        sa.Column("section_id", sa.String(length=64), nullable=False),
        sa.Column("question_id", sa.String(length=64), nullable=False),
        sa.Column("selected_option", sa.Integer(), nullable=True),
        sa.Column("attempted", sa.Boolean(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.Column("visited", sa.Boolean(), nullable=False),
        sa.Column("marked_for_review", sa.Boolean(), nullable=False),
        sa.Column("time_taken", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("attempt_id", "question_id", name="uq_attempt_responses_question"),
    )
    op.create_index("ix_attempt_responses_attempt_id", "attempt_responses", ["attempt_id"])

    op.create_table(
        "ranking_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("test_series_id", sa.Integer(), sa.ForeignKey("test_series.id"), nullable=False),
        sa.Column("test_id", sa.Integer(), sa.ForeignKey("tests.id"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("total_participants", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("test_id", "user_id", name="uq_ranking_entries_user"),
    )
    op.create_index("ix_ranking_entries_test_id", "ranking_entries", ["test_id"])


def downgrade() -> None:
    op.drop_index("ix_ranking_entries_test_id", table_name="ranking_entries")
    op.drop_table("ranking_entries")
    op.drop_index("ix_attempt_responses_attempt_id", table_name="attempt_responses")
    op.drop_table("attempt_responses")
    op.drop_index("ix_attempts_status", table_name="attempts")
    op.drop_index("uq_attempts_user_series_test", table_name="attempts")
    op.drop_table("attempts")
    op.drop_index("ix_entitlements_user_id", table_name="entitlements")
    op.drop_table("entitlements")
    op.drop_index("ix_tests_series_id", table_name="tests")
    op.drop_table("tests")
    op.drop_table("test_series")
