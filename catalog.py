from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from db import as_utc, utcnow
from errors import NotFoundError
from models import Test, TestSeries

UPCOMING = "upcoming"
LIVE = "live"
RESULTS_AVAILABLE = "results_available"
UNKNOWN = "unknown"


def get_test_definition(db: Session, series_id: int, test_id: int) -> Tuple[TestSeries, Test]:
    series = db.get(TestSeries, series_id)
    if not series:
        raise NotFoundError("Test series not found")
    test = db.get(Test, test_id)
    if not test or test.series_id != series.id:
        raise NotFoundError("Test not found in this series")
    return series, test


def get_cutoffs(db: Session, test_id: int) -> Optional[Dict[str, Any]]:
    # read live: cutoffs are usually published after the test closes
    test = db.get(Test, test_id)
    return test.cutoffs if test is not None else None


def schedule_state(test: Test, now: Optional[datetime] = None) -> str:
    if not test.start_time or not test.end_time:
        return UNKNOWN

    now = now or utcnow()
    start, end = as_utc(test.start_time), as_utc(test.end_time)
    if now < start:
        return UPCOMING
    if now <= end:
        return LIVE
    return RESULTS_AVAILABLE


def is_startable(test: Test, now: Optional[datetime] = None) -> bool:
    # untimed tests are always open
    return schedule_state(test, now) in (LIVE, UNKNOWN)
