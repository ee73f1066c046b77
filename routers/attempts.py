# routers/attempts.py

from typing import Annotated, List

from fastapi import APIRouter, Depends, Query, Response

import attempts as engine
import catalog
import ranking
import store
from access import Principal
from db import SessionLocal, as_utc
from deps.auth import current_user
from models import Attempt
from schemas.attempts import (
    AttemptSummaryOut,
    LeaderboardOut,
    LiveViewOut,
    ResultAnalysisOut,
    StartAttemptOut,
    SubmitAttemptOut,
    SubmitQuestionRequest,
    VisitQuestionRequest,
)

router = APIRouter(prefix="/attempts", tags=["attempts"])

User = Annotated[Principal, Depends(current_user)]


def start_out(attempt: Attempt, resumed: bool) -> StartAttemptOut:
    snap = engine.attempt_snapshot(attempt)
    return StartAttemptOut(
        attempt_id=attempt.id,
        started_at=as_utc(attempt.started_at),
        status=attempt.status,
        resumed=resumed,
        test_name=snap.test_name,
        duration_in_seconds=snap.duration_in_seconds,
        total_marks=snap.total_marks,
    )


def submit_out(outcome: engine.FinalizeOutcome) -> SubmitAttemptOut:
    a = outcome.attempt
    return SubmitAttemptOut(
        attempt_id=a.id,
        score=a.score,
        status=a.status,
        submitted_at=as_utc(a.submitted_at),
        already_submitted=not outcome.performed,
    )


@router.get("/my-attempts", response_model=List[AttemptSummaryOut])
def my_attempts(user: User, limit: int = Query(default=20, ge=1, le=100)):
    with SessionLocal() as db:
        rows = store.list_submitted_for_user(db, user.user_id, limit=limit)
        return [AttemptSummaryOut.model_validate(a) for a in rows]


@router.post("/{series_id}/{test_id}/start", response_model=StartAttemptOut)
def start_test(series_id: int, test_id: int, user: User, response: Response):
    with SessionLocal() as db:
        outcome = engine.start_attempt(db, user, series_id, test_id)
        response.status_code = 201 if outcome.created else 200
        return start_out(outcome.attempt, resumed=not outcome.created)


@router.post("/{series_id}/{test_id}/submit-question")
def submit_question(series_id: int, test_id: int, req: SubmitQuestionRequest, user: User):
    with SessionLocal() as db:
        attempt = engine.resolve_attempt(db, user, series_id, test_id)
        engine.submit_response(
            db,
            attempt,
            question_id=req.question_id,
            selected_option=req.selected_option,
            time_taken=req.time_taken,
            marked_for_review=req.marked_for_review,
            section_id=req.section_id,
        )
    # never echo correctness while the exam is live
    return {"success": True}


@router.post("/{series_id}/{test_id}/visit-question")
def visit_question(series_id: int, test_id: int, req: VisitQuestionRequest, user: User):
    with SessionLocal() as db:
        attempt = engine.resolve_attempt(db, user, series_id, test_id)
        engine.visit_question(db, attempt, req.question_id, section_id=req.section_id)
    return {"success": True}


@router.post("/{series_id}/{test_id}/submit", response_model=SubmitAttemptOut)
def submit_test(series_id: int, test_id: int, user: User):
    with SessionLocal() as db:
        attempt = engine.resolve_attempt(db, user, series_id, test_id)
        return submit_out(engine.finalize_attempt(db, attempt.id))


@router.get("/{series_id}/{test_id}/leaderboard", response_model=LeaderboardOut)
def leaderboard(series_id: int, test_id: int, user: User):
    with SessionLocal() as db:
        _, test = catalog.get_test_definition(db, series_id, test_id)
        rows = ranking.leaderboard(db, test.id)
        return {
            "test_id": test.id,
            "test_name": test.test_name,
            "total_participants": len(rows),
            "leaderboard": rows,
        }


@router.get("/{attempt_id}/questions", response_model=LiveViewOut)
def live_questions(attempt_id: int, user: User):
    with SessionLocal() as db:
        return engine.live_view(db, attempt_id, user)


@router.get("/{attempt_id}/result", response_model=ResultAnalysisOut)
def result(attempt_id: int, user: User):
    with SessionLocal() as db:
        return engine.result_analysis(db, attempt_id, user)
