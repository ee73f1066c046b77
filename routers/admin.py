from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

import attempts as engine
from access import Principal
from db import SessionLocal
from deps.auth import require_admin
from routers.attempts import start_out, submit_out
from scheduler import auto_submit
from schemas.attempts import (
    SchedulerStatusOut,
    StartAttemptOut,
    SubmitAttemptOut,
    SubmitQuestionRequest,
    SweepOut,
    VisitQuestionRequest,
)

router = APIRouter(prefix="/admin", tags=["admin"])

Admin = Annotated[Principal, Depends(require_admin)]


# ---------- Preview attempts (unlimited, unranked) ----------


@router.post("/attempts/{series_id}/{test_id}/start", response_model=StartAttemptOut, status_code=201)
def admin_start(series_id: int, test_id: int, admin: Admin):
    with SessionLocal() as db:
        return start_out(engine.start_admin_attempt(db, admin, series_id, test_id), resumed=False)


@router.post("/attempts/{series_id}/{test_id}/submit-question")
def admin_submit_question(series_id: int, test_id: int, req: SubmitQuestionRequest, admin: Admin):
    with SessionLocal() as db:
        attempt = engine.resolve_attempt(db, admin, series_id, test_id, admin=True)
        engine.submit_response(
            db,
            attempt,
            question_id=req.question_id,
            selected_option=req.selected_option,
            time_taken=req.time_taken,
            marked_for_review=req.marked_for_review,
            section_id=req.section_id,
        )
    return {"success": True}


@router.post("/attempts/{series_id}/{test_id}/visit-question")
def admin_visit_question(series_id: int, test_id: int, req: VisitQuestionRequest, admin: Admin):
    with SessionLocal() as db:
        attempt = engine.resolve_attempt(db, admin, series_id, test_id, admin=True)
        engine.visit_question(db, attempt, req.question_id, section_id=req.section_id)
    return {"success": True}


@router.post("/attempts/{series_id}/{test_id}/submit", response_model=SubmitAttemptOut)
def admin_submit(series_id: int, test_id: int, admin: Admin):
    with SessionLocal() as db:
        attempt = engine.resolve_attempt(db, admin, series_id, test_id, admin=True)
        return submit_out(engine.finalize_attempt(db, attempt.id))


# ---------- Auto-submit ----------


@router.get("/scheduler", response_model=SchedulerStatusOut)
def scheduler_status(admin: Admin):
    return auto_submit.status()


@router.post("/scheduler/sweep", response_model=SweepOut)
def scheduler_sweep(admin: Admin):
    processed = auto_submit.sweep()
    return {"processed": processed, "status": auto_submit.status()}
