"""Per-test ranking.

Every new score re-ranks the whole test: entries are ordered by score desc,
accuracy desc, created_at asc, and rank/total_participants are rewritten for
all of them in one bulk update. Cost is O(participants) per submission.
"""

from __future__ import annotations

import logging
from concurrent import futures
from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import RankingEntry

logger = logging.getLogger(__name__)


def _upsert_entry(
    db: Session, series_id: int, test_id: int, user_id: str, score: float, accuracy: float
) -> None:
    stmt = select(RankingEntry).where(RankingEntry.test_id == test_id, RankingEntry.user_id == user_id)
    entry = db.scalars(stmt).first()
    if entry is None:
        # provisional last place until the bulk re-rank below rewrites it
        placed = db.execute(
            select(func.count()).select_from(RankingEntry).where(RankingEntry.test_id == test_id)
        ).scalar_one()
        db.add(
            RankingEntry(
                test_series_id=series_id,
                test_id=test_id,
                user_id=user_id,
                score=score,
                accuracy=accuracy,
                rank=placed + 1,
                total_participants=placed + 1,
            )
        )
        try:
            db.commit()
            return
        except IntegrityError:
            # another recompute inserted it first
            db.rollback()
            entry = db.scalars(stmt).one()

    entry.test_series_id = series_id
    entry.score = score
    entry.accuracy = accuracy
    db.commit()


def ordered_entries(db: Session, test_id: int) -> List[RankingEntry]:
    stmt = (
        select(RankingEntry)
        .where(RankingEntry.test_id == test_id)
        .order_by(
            RankingEntry.score.desc(),
            RankingEntry.accuracy.desc(),
            RankingEntry.created_at.asc(),
            RankingEntry.id.asc(),
        )
    )
    return list(db.scalars(stmt).all())


def recompute(
    db: Session, series_id: int, test_id: int, user_id: str, score: float, accuracy: float
) -> Optional[RankingEntry]:
    _upsert_entry(db, series_id, test_id, user_id, score, accuracy)

    entries = ordered_entries(db, test_id)
    total = len(entries)
    if entries:
        db.execute(
            update(RankingEntry),
            [{"id": e.id, "rank": idx, "total_participants": total} for idx, e in enumerate(entries, 1)],
        )
        db.commit()

    stmt = select(RankingEntry).where(RankingEntry.test_id == test_id, RankingEntry.user_id == user_id)
    return db.scalars(stmt).first()


def get_entry(db: Session, test_id: int, user_id: str) -> Optional[RankingEntry]:
    stmt = select(RankingEntry).where(RankingEntry.test_id == test_id, RankingEntry.user_id == user_id)
    return db.scalars(stmt).first()


def leaderboard(db: Session, test_id: int) -> List[Dict[str, Any]]:
    stmt = (
        select(RankingEntry)
        .where(RankingEntry.test_id == test_id)
        .order_by(RankingEntry.rank.asc(), RankingEntry.id.asc())
    )
    entries = list(db.scalars(stmt).all())
    total = len(entries)
    return [
        {
            "position": e.rank,
            "user": e.user_id,
            "score": e.score,
            "accuracy": e.accuracy,
            "total_participants": total,
        }
        for e in entries
    ]


# ---------- Fire-and-forget dispatch ----------

# one worker: recomputes for a test never interleave within a process
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ranking")
_pending: set[futures.Future] = set()
_pending_lock = Lock()


def _recompute_in_own_session(series_id: int, test_id: int, user_id: str, score: float, accuracy: float):
    from db import SessionLocal

    try:
        with SessionLocal() as db:
            entry = recompute(db, series_id, test_id, user_id, score, accuracy)
            logger.info(
                "ranking updated test=%s user=%s rank=%s/%s",
                test_id,
                user_id,
                entry.rank if entry else None,
                entry.total_participants if entry else None,
            )
    except Exception:
        logger.exception("ranking update failed test=%s user=%s", test_id, user_id)


def dispatch_recompute(series_id: int, test_id: int, user_id: str, score: float, accuracy: float) -> None:
    """Queue a recompute and return immediately; failures are logged, never raised."""
    fut = _executor.submit(_recompute_in_own_session, series_id, test_id, user_id, score, accuracy)
    with _pending_lock:
        _pending.add(fut)
    fut.add_done_callback(_forget)


def _forget(fut: futures.Future) -> None:
    with _pending_lock:
        _pending.discard(fut)


def wait_for_pending(timeout: Optional[float] = None) -> None:
    with _pending_lock:
        pending = list(_pending)
    if pending:
        futures.wait(pending, timeout=timeout)
