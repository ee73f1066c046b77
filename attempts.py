"""CBT attempt state machine.

    IN_PROGRESS --(submit | auto-submit)--> SUBMITTED

An attempt carries a frozen snapshot of its test; questions are served and
answers are scored from that snapshot only. Responses are upserted one row per
question while the attempt is open. Finalization is a conditional update on
the attempt row, so exactly one caller (user or sweep) performs it and the
results are computed in that same transaction.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import catalog
import ranking
import scoring
import store
from access import Principal, can_start
from db import as_utc, utcnow
from errors import (
    ALREADY_COMPLETED,
    ALREADY_STARTED,
    ALREADY_SUBMITTED,
    INVALID_OPTION,
    NOT_YOUR_ATTEMPT,
    RESULT_NOT_READY,
    TIME_EXPIRED,
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from models import Attempt, AttemptResponse, AttemptStatus
from schemas.snapshot import Snapshot
from snapshot import build_snapshot, dump_snapshot, load_snapshot

logger = logging.getLogger(__name__)

# latency allowance for answers that were sent just before the deadline
RESPONSE_GRACE_SECONDS = int(os.getenv("RESPONSE_GRACE_SECONDS", "5"))


@dataclass(frozen=True)
class StartOutcome:
    attempt: Attempt
    created: bool


@dataclass(frozen=True)
class FinalizeOutcome:
    attempt: Attempt
    performed: bool


def attempt_snapshot(attempt: Attempt) -> Snapshot:
    return load_snapshot(attempt.snapshot)


def _notify_scheduler(started: bool) -> None:
    from scheduler import auto_submit

    if started:
        auto_submit.activate()
    else:
        auto_submit.deactivate()


# ---------- Start ----------


def start_attempt(
    db: Session,
    principal: Principal,
    series_id: int,
    test_id: int,
    now: Optional[datetime] = None,
) -> StartOutcome:
    now = now or utcnow()
    series, test = catalog.get_test_definition(db, series_id, test_id)

    existing = store.find_attempt(db, principal.user_id, series.id, test.id)
    if existing is not None:
        if existing.status == AttemptStatus.IN_PROGRESS:
            return StartOutcome(existing, created=False)
        raise StateConflictError(ALREADY_COMPLETED)

    decision = can_start(db, principal, series, test, now)
    if not decision.allowed:
        raise AuthorizationError(decision.reason)

    if not catalog.is_startable(test, now):
        raise ValidationError(f"Test is not available. Current state: {catalog.schedule_state(test, now)}")

    attempt = Attempt(
        user_id=principal.user_id,
        test_series_id=series.id,
        test_id=test.id,
        is_admin_attempt=False,
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
        snapshot=dump_snapshot(build_snapshot(test)),
    )
    try:
        store.insert_attempt(db, attempt)
    except store.AttemptExists:
        # lost the race against a concurrent start for the same triple
        raise StateConflictError(ALREADY_STARTED)

    logger.info("attempt %s started user=%s test=%s", attempt.id, principal.user_id, test.id)
    _notify_scheduler(started=True)
    return StartOutcome(attempt, created=True)


def start_admin_attempt(
    db: Session,
    principal: Principal,
    series_id: int,
    test_id: int,
    now: Optional[datetime] = None,
) -> Attempt:
    """Preview run: no access check, no uniqueness, never ranked."""
    now = now or utcnow()
    series, test = catalog.get_test_definition(db, series_id, test_id)

    if catalog.schedule_state(test, now) == catalog.UPCOMING:
        raise ValidationError("Test has not started yet")

    attempt = Attempt(
        user_id=principal.user_id,
        test_series_id=series.id,
        test_id=test.id,
        is_admin_attempt=True,
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
        snapshot=dump_snapshot(build_snapshot(test)),
    )
    store.insert_attempt(db, attempt)
    logger.info("admin attempt %s started user=%s test=%s", attempt.id, principal.user_id, test.id)
    _notify_scheduler(started=True)
    return attempt


def resolve_attempt(
    db: Session, principal: Principal, series_id: int, test_id: int, admin: bool = False
) -> Attempt:
    series, test = catalog.get_test_definition(db, series_id, test_id)
    if admin:
        attempt = store.find_active_admin_attempt(db, principal.user_id, series.id, test.id)
        if attempt is None:
            raise NotFoundError("No active test attempt found")
        return attempt

    attempt = store.find_attempt(db, principal.user_id, series.id, test.id)
    if attempt is None:
        raise NotFoundError("Test attempt not found")
    return attempt


# ---------- Responses ----------


def _check_writable(attempt: Attempt, snapshot: Snapshot, now: datetime) -> None:
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise StateConflictError(ALREADY_SUBMITTED)
    deadline = as_utc(attempt.started_at) + timedelta(
        seconds=snapshot.duration_in_seconds + RESPONSE_GRACE_SECONDS
    )
    if now > deadline:
        raise StateConflictError(TIME_EXPIRED)


def _locate(snapshot: Snapshot, question_id: str, section_id: Optional[str]):
    section, question = snapshot.find_question(question_id)
    if question is None:
        raise NotFoundError("Question not found")
    if section_id and section_id != section.id:
        raise ValidationError("Question does not belong to this section")
    return section, question


def _write_response(db: Session, attempt_id: int, now: datetime, fields: Dict[str, Any], visit_only: bool):
    def write() -> None:
        if not store.touch_in_progress(db, attempt_id, now):
            db.rollback()
            raise StateConflictError(ALREADY_SUBMITTED)

        existing = store.get_response(db, attempt_id, fields["question_id"])
        if existing is None:
            db.add(AttemptResponse(attempt_id=attempt_id, **fields))
        elif not visit_only:
            for key, value in fields.items():
                setattr(existing, key, value)
        db.commit()

    try:
        store.run_with_retries(db, write)
    except IntegrityError:
        # a concurrent first write for this question won; ours becomes the update
        db.rollback()
        store.run_with_retries(db, write)


def submit_response(
    db: Session,
    attempt: Attempt,
    question_id: str,
    selected_option: Optional[int],
    time_taken: int = 0,
    marked_for_review: bool = False,
    section_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    """Record the candidate's answer. Correctness is stored, never returned."""
    now = now or utcnow()
    snapshot = attempt_snapshot(attempt)
    section, question = _locate(snapshot, question_id, section_id)

    if selected_option is not None and not (0 <= selected_option < len(question.options)):
        raise ValidationError(INVALID_OPTION)

    _check_writable(attempt, snapshot, now)

    attempted = selected_option is not None
    fields = {
        "section_id": section.id,
        "question_id": question.id,
        "selected_option": selected_option,
        "attempted": attempted,
        "is_correct": (selected_option == question.correct_option_index) if attempted else None,
        "visited": True,
        "marked_for_review": bool(marked_for_review),
        "time_taken": max(0, int(time_taken or 0)),
    }
    _write_response(db, attempt.id, now, fields, visit_only=False)


def visit_question(
    db: Session,
    attempt: Attempt,
    question_id: str,
    section_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    now = now or utcnow()
    snapshot = attempt_snapshot(attempt)
    section, question = _locate(snapshot, question_id, section_id)
    _check_writable(attempt, snapshot, now)

    fields = {
        "section_id": section.id,
        "question_id": question.id,
        "selected_option": None,
        "attempted": False,
        "is_correct": None,
        "visited": True,
        "marked_for_review": False,
        "time_taken": 0,
    }
    _write_response(db, attempt.id, now, fields, visit_only=True)


# ---------- Finalize ----------


def finalize_attempt(db: Session, attempt_id: int, now: Optional[datetime] = None) -> FinalizeOutcome:
    """Submit an attempt exactly once; later callers get the frozen result."""
    now = now or utcnow()
    if store.get_attempt(db, attempt_id) is None:
        raise NotFoundError("Test attempt not found")

    def transition() -> bool:
        if not store.transition_to_submitted(db, attempt_id, now):
            db.rollback()
            return False

        attempt = db.get(Attempt, attempt_id, populate_existing=True)
        responses = store.list_responses(db, attempt_id)
        results = scoring.compute_results(
            attempt_snapshot(attempt), responses, as_utc(attempt.started_at), now
        )
        store.save_results(db, attempt_id, **results.as_dict())
        db.commit()
        return True

    performed = store.run_with_retries(db, transition)
    attempt = db.get(Attempt, attempt_id, populate_existing=True)

    if performed:
        logger.info(
            "attempt %s submitted user=%s score=%s accuracy=%.2f",
            attempt.id,
            attempt.user_id,
            attempt.score,
            attempt.accuracy or 0.0,
        )
        if not attempt.is_admin_attempt:
            ranking.dispatch_recompute(
                attempt.test_series_id, attempt.test_id, attempt.user_id, attempt.score, attempt.accuracy
            )
        _notify_scheduler(started=False)

    return FinalizeOutcome(attempt, performed)


# ---------- Views ----------


def _owned(db: Session, attempt_id: int, principal: Principal, reason: str) -> Attempt:
    attempt = store.get_attempt(db, attempt_id)
    if attempt is None:
        raise NotFoundError("Test attempt not found")
    if attempt.user_id != principal.user_id:
        raise AuthorizationError(reason)
    return attempt


def live_view(
    db: Session, attempt_id: int, principal: Principal, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Exam-mode view: questions without answers, per-question status, palette, clock."""
    now = now or utcnow()
    attempt = _owned(db, attempt_id, principal, "Not your attempt")
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise StateConflictError(ALREADY_SUBMITTED)

    snapshot = attempt_snapshot(attempt)
    by_question = {r.question_id: r for r in store.list_responses(db, attempt.id)}

    sections = []
    statuses = []
    for section in snapshot.sections:
        questions = []
        for q in section.questions:
            r = by_question.get(q.id)
            status = scoring.question_status(r)
            statuses.append(status)
            questions.append(
                {
                    "question_id": q.id,
                    "question_number": q.question_number,
                    "question_text": q.question_text,
                    "options": list(q.options),
                    "status": status,
                    "selected_option": r.selected_option if r else None,
                    "marked_for_review": r.marked_for_review if r else False,
                }
            )
        sections.append({"section_id": section.id, "title": section.title, "questions": questions})

    return {
        "attempt_id": attempt.id,
        "remaining_time": scoring.remaining_seconds(snapshot, as_utc(attempt.started_at), now),
        "sections": sections,
        "palette": scoring.palette(statuses),
        "test_info": {
            "test_name": snapshot.test_name,
            "total_questions": snapshot.total_questions,
            "total_marks": snapshot.total_marks,
            "duration_in_seconds": snapshot.duration_in_seconds,
            "started_at": as_utc(attempt.started_at),
        },
    }


def result_analysis(db: Session, attempt_id: int, principal: Principal) -> Dict[str, Any]:
    attempt = _owned(db, attempt_id, principal, NOT_YOUR_ATTEMPT)
    if attempt.status != AttemptStatus.SUBMITTED or not attempt.result_generated:
        raise StateConflictError(RESULT_NOT_READY)

    snapshot = attempt_snapshot(attempt)
    responses = store.list_responses(db, attempt.id)
    sections = scoring.section_report(snapshot, responses)
    strongest, weakest = scoring.strongest_and_weakest(sections)

    entry = None if attempt.is_admin_attempt else ranking.get_entry(db, attempt.test_id, attempt.user_id)
    rank = entry.rank if entry and entry.rank else None
    total_participants = entry.total_participants if entry and entry.rank else None

    cutoff_analysis = None
    if not attempt.is_admin_attempt:
        cutoffs = catalog.get_cutoffs(db, attempt.test_id)
        # the category header describes the caller, not whoever owns the attempt
        category = principal.category if principal.user_id == attempt.user_id else None
        cutoff_analysis = {
            "status": scoring.cutoff_status(attempt.score, category, cutoffs),
            "user_category": category,
            "cutoffs": cutoffs,
        }

    return {
        "attempt_id": attempt.id,
        "user_summary": {
            "user_id": attempt.user_id,
            "test_name": snapshot.test_name,
            "score": attempt.score,
            "total_marks": snapshot.total_marks,
            "correct": attempt.correct,
            "incorrect": attempt.incorrect,
            "unattempted": attempt.unattempted,
            "accuracy": attempt.accuracy,
            "speed": attempt.speed,
            "percentage": attempt.percentage,
            "rank": rank,
            "total_participants": total_participants,
            "percentile": scoring.percentile(rank, total_participants),
            "started_at": as_utc(attempt.started_at),
            "submitted_at": as_utc(attempt.submitted_at),
        },
        "section_report": sections,
        "cutoff_analysis": cutoff_analysis,
        "performance_analysis": {"strongest_area": strongest, "weakest_area": weakest},
        "question_report": scoring.question_report(snapshot, responses),
    }
