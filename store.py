"""Attempt persistence.

All mutual exclusion between requests (and the auto-submit sweep) is done here
with single-row conditional updates; there are no in-process locks on attempts.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from errors import TransientStoreError
from models import Attempt, AttemptResponse, AttemptStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))
_RETRY_BACKOFF_SECONDS = 0.05


class AttemptExists(Exception):
    """The uniqueness index rejected a second attempt for the same triple."""


# ---------- Reads ----------


def get_attempt(db: Session, attempt_id: int) -> Optional[Attempt]:
    return db.get(Attempt, attempt_id)


def find_attempt(db: Session, user_id: str, series_id: int, test_id: int) -> Optional[Attempt]:
    """The user's (non-admin) attempt for this test, whatever its status."""
    stmt = select(Attempt).where(
        Attempt.user_id == user_id,
        Attempt.test_series_id == series_id,
        Attempt.test_id == test_id,
        Attempt.is_admin_attempt.is_(False),
    )
    return db.scalars(stmt).first()


def find_active_admin_attempt(
    db: Session, user_id: str, series_id: int, test_id: int
) -> Optional[Attempt]:
    stmt = (
        select(Attempt)
        .where(
            Attempt.user_id == user_id,
            Attempt.test_series_id == series_id,
            Attempt.test_id == test_id,
            Attempt.is_admin_attempt.is_(True),
            Attempt.status == AttemptStatus.IN_PROGRESS,
        )
        .order_by(Attempt.started_at.desc(), Attempt.id.desc())
    )
    return db.scalars(stmt).first()


def list_in_progress(db: Session) -> List[Attempt]:
    stmt = select(Attempt).where(Attempt.status == AttemptStatus.IN_PROGRESS).order_by(Attempt.id)
    return list(db.scalars(stmt).all())


def count_in_progress(db: Session) -> int:
    stmt = select(func.count()).select_from(Attempt).where(
        Attempt.status == AttemptStatus.IN_PROGRESS
    )
    return db.execute(stmt).scalar_one()


def list_submitted_for_user(db: Session, user_id: str, limit: int = 50) -> List[Attempt]:
    stmt = (
        select(Attempt)
        .where(Attempt.user_id == user_id, Attempt.result_generated.is_(True))
        .order_by(Attempt.submitted_at.desc(), Attempt.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt).all())


def get_response(db: Session, attempt_id: int, question_id: str) -> Optional[AttemptResponse]:
    stmt = select(AttemptResponse).where(
        AttemptResponse.attempt_id == attempt_id,
        AttemptResponse.question_id == question_id,
    )
    return db.scalars(stmt).first()


def list_responses(db: Session, attempt_id: int) -> List[AttemptResponse]:
    stmt = (
        select(AttemptResponse)
        .where(AttemptResponse.attempt_id == attempt_id)
        .order_by(AttemptResponse.id)
        .execution_options(populate_existing=True)
    )
    return list(db.scalars(stmt).all())


# ---------- Writes ----------


def insert_attempt(db: Session, attempt: Attempt) -> Attempt:
    """Create-if-absent. Commits; raises AttemptExists when the triple is taken."""
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AttemptExists(str(e.orig)) from e
    db.refresh(attempt)
    return attempt


def touch_in_progress(db: Session, attempt_id: int, now: datetime) -> bool:
    """Take the attempt row for this transaction, only if it is still open.

    A concurrent finalization either waits for our commit or makes this return False.
    """
    result = db.execute(
        update(Attempt)
        .where(Attempt.id == attempt_id, Attempt.status == AttemptStatus.IN_PROGRESS)
        .values(last_activity_at=now)
    )
    return result.rowcount == 1


def transition_to_submitted(db: Session, attempt_id: int, now: datetime) -> bool:
    """IN_PROGRESS -> SUBMITTED, at most once. True only for the caller that did it."""
    result = db.execute(
        update(Attempt)
        .where(Attempt.id == attempt_id, Attempt.status == AttemptStatus.IN_PROGRESS)
        .values(
            status=AttemptStatus.SUBMITTED,
            submitted_at=now,
            result_generated=True,
        )
    )
    return result.rowcount == 1


def save_results(db: Session, attempt_id: int, **fields) -> None:
    db.execute(update(Attempt).where(Attempt.id == attempt_id).values(**fields))


def run_with_retries(db: Session, operation: Callable[[], T], attempts: Optional[int] = None) -> T:
    """Run a conditional store operation, retrying transient failures.

    The operations passed in are guarded by status conditions, so running them
    again after a rollback cannot double-apply.
    """
    attempts = attempts or STORE_RETRY_ATTEMPTS
    for n in range(1, attempts + 1):
        try:
            return operation()
        except OperationalError as e:
            db.rollback()
            if n == attempts:
                logger.error("store operation failed after %d attempts: %s", n, e)
                raise TransientStoreError("Service temporarily unavailable, please retry") from e
            logger.warning("transient store error (try %d/%d): %s", n, attempts, e)
            time.sleep(_RETRY_BACKOFF_SECONDS * n)
    raise AssertionError("unreachable")
