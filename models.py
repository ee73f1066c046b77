from __future__ import annotations

from datetime import datetime
from enum import StrEnum

import sqlalchemy as sa
from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base, utcnow


class AttemptStatus(StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"


# ---------- Catalog (owned elsewhere, read-only here) ----------


class TestSeries(Base):
    __tablename__ = "test_series"
    # keep pytest from collecting the model
    __test__ = False

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    access_type: Mapped[str] = mapped_column(String(8), default="PAID")  # FREE | PAID
    free_quota: Mapped[int | None] = mapped_column(Integer, nullable=True, default=2)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    tests: Mapped[list[Test]] = relationship(
        back_populates="series", order_by=lambda: [Test.position, Test.id]
    )


class Test(Base):
    __tablename__ = "tests"
    __test__ = False

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    series_id: Mapped[int] = mapped_column(ForeignKey("test_series.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    test_name: Mapped[str] = mapped_column(String(200))
    duration_in_seconds: Mapped[int] = mapped_column(Integer, default=3600)
    positive_marks: Mapped[float | None] = mapped_column(Float, nullable=True)
    negative_marks: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # [{"id", "title", "questions": [{"id", "question_text", "options", ...}]}]
    sections: Mapped[list] = mapped_column(JSON, default=list)
    # minimum score per candidate category: {"general", "obc", "sc", "st"}
    cutoffs: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    series: Mapped[TestSeries] = relationship(back_populates="tests")


class Entitlement(Base):
    __tablename__ = "entitlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    item_type: Mapped[str] = mapped_column(String(32))  # ItemType value
    item_id: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16), default="pending")
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ---------- Exam engine ----------


class Attempt(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        # one attempt per (user, series, test); admin preview runs are exempt
        sa.Index(
            "uq_attempts_user_series_test",
            "user_id",
            "test_series_id",
            "test_id",
            unique=True,
            sqlite_where=sa.text("is_admin_attempt = 0"),
            postgresql_where=sa.text("is_admin_attempt = false"),
        ),
        sa.Index("ix_attempts_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    test_series_id: Mapped[int] = mapped_column(ForeignKey("test_series.id"))
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id"))
    is_admin_attempt: Mapped[bool] = mapped_column(Boolean, default=False)

    status: Mapped[str] = mapped_column(String(16), default=AttemptStatus.IN_PROGRESS)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    snapshot: Mapped[dict] = mapped_column(JSON)  # written once, on insert

    # frozen at finalization
    result_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    correct: Mapped[int | None] = mapped_column(Integer, nullable=True)
    incorrect: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unattempted: Mapped[int | None] = mapped_column(Integer, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    responses: Mapped[list[AttemptResponse]] = relationship(
        back_populates="attempt", order_by="AttemptResponse.id"
    )


class AttemptResponse(Base):
    __tablename__ = "attempt_responses"
    __table_args__ = (
        sa.UniqueConstraint("attempt_id", "question_id", name="uq_attempt_responses_question"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attempt_id: Mapped[int] = mapped_column(ForeignKey("attempts.id"), index=True)
    section_id: Mapped[str] = mapped_column(String(64))
    question_id: Mapped[str] = mapped_column(String(64))
    selected_option: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attempted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    visited: Mapped[bool] = mapped_column(Boolean, default=False)
    marked_for_review: Mapped[bool] = mapped_column(Boolean, default=False)
    time_taken: Mapped[int] = mapped_column(Integer, default=0)  # seconds
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    attempt: Mapped[Attempt] = relationship(back_populates="responses")


class RankingEntry(Base):
    __tablename__ = "ranking_entries"
    __table_args__ = (sa.UniqueConstraint("test_id", "user_id", name="uq_ranking_entries_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_series_id: Mapped[int] = mapped_column(ForeignKey("test_series.id"))
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id"), index=True)
    user_id: Mapped[str] = mapped_column(String(64))
    score: Mapped[float] = mapped_column(Float, default=0)
    accuracy: Mapped[float] = mapped_column(Float, default=0)
    rank: Mapped[int] = mapped_column(Integer, default=0)
    total_participants: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
