"""Who may start which test.

A test is free when its ordinal position inside the series is below the
series' free quota (or the whole series is FREE). Anything else needs a
completed, unexpired TestSeries entitlement, or an administrator.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from db import as_utc, utcnow
from errors import ValidationError
from models import Entitlement, Test, TestSeries

DEFAULT_FREE_QUOTA = 2
_DAY_SECONDS = 24 * 60 * 60


class ItemType(str, Enum):
    ONLINE_COURSE = "OnlineCourse"
    TEST_SERIES = "TestSeries"
    PUBLICATION = "Publication"

    @classmethod
    def normalize(cls, value: "str | ItemType") -> "ItemType":
        """Accept the legacy spellings ('test_series', 'TEST_SERIES', 'course', ...)."""
        if isinstance(value, ItemType):
            return value
        key = (value or "").replace("_", "").replace("-", "").replace(" ", "").lower()
        item = _ITEM_ALIASES.get(key)
        if item is None:
            raise ValidationError(f"Unknown item type: {value!r}")
        return item


_ITEM_ALIASES = {
    "onlinecourse": ItemType.ONLINE_COURSE,
    "course": ItemType.ONLINE_COURSE,
    "testseries": ItemType.TEST_SERIES,
    "publication": ItemType.PUBLICATION,
}


@dataclass(frozen=True)
class Principal:
    user_id: str
    is_admin: bool = False
    # reservation category, used only for cutoff evaluation
    category: Optional[str] = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


# ---------- Entitlements ----------


def is_entitlement_valid(expiry_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    # no expiry means unlimited validity
    if expiry_date is None:
        return True
    return (now or utcnow()) < as_utc(expiry_date)


def entitlement_status(expiry_date: Optional[datetime], now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    if expiry_date is None:
        return {"is_valid": True, "is_unlimited": True, "days_remaining": None}

    delta = (as_utc(expiry_date) - now).total_seconds()
    if delta > 0:
        return {
            "is_valid": True,
            "is_unlimited": False,
            "days_remaining": math.ceil(delta / _DAY_SECONDS),
        }
    return {
        "is_valid": False,
        "is_unlimited": False,
        "days_remaining": -math.floor(-delta / _DAY_SECONDS),
    }


def _completed_entitlements(db: Session, user_id: str, item_type: ItemType, item_id: str):
    stmt = select(Entitlement).where(
        Entitlement.user_id == user_id,
        Entitlement.item_type == item_type.value,
        Entitlement.item_id == str(item_id),
        Entitlement.status == "completed",
    )
    return db.scalars(stmt).all()


def has_entitlement(
    db: Session,
    user_id: str,
    item_type: "str | ItemType",
    item_id: str,
    now: Optional[datetime] = None,
) -> bool:
    item_type = ItemType.normalize(item_type)
    return any(
        is_entitlement_valid(e.expiry_date, now)
        for e in _completed_entitlements(db, user_id, item_type, item_id)
    )


def get_entitlement_expiry(
    db: Session, user_id: str, item_type: "str | ItemType", item_id: str
) -> Optional[datetime]:
    """Latest expiry across completed purchases; None is unlimited (or no purchase)."""
    item_type = ItemType.normalize(item_type)
    expiries = [as_utc(e.expiry_date) for e in _completed_entitlements(db, user_id, item_type, item_id)]
    if not expiries or any(e is None for e in expiries):
        return None
    return max(expiries)


# ---------- Resolver ----------


def ordinal_position(series: TestSeries, test: Test) -> int:
    for idx, t in enumerate(series.tests):
        if t.id == test.id:
            return idx
    return -1


def is_test_free(series: TestSeries, test: Test) -> bool:
    if (series.access_type or "").upper() == "FREE":
        return True
    quota = series.free_quota if series.free_quota is not None else DEFAULT_FREE_QUOTA
    idx = ordinal_position(series, test)
    return 0 <= idx < quota


def can_start(
    db: Session,
    principal: Principal,
    series: TestSeries,
    test: Test,
    now: Optional[datetime] = None,
) -> AccessDecision:
    if is_test_free(series, test):
        return AccessDecision(True, "Free test")
    if principal.is_admin:
        return AccessDecision(True, "Administrator")
    if has_entitlement(db, principal.user_id, ItemType.TEST_SERIES, str(series.id), now):
        return AccessDecision(True, "Purchased")
    return AccessDecision(False, "Please purchase this test series to access this test")
