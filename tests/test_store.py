from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

import store
from db import SessionLocal, utcnow
from errors import TransientStoreError
from models import Attempt, AttemptStatus


def new_attempt(series_id, test_id, user="u1", admin=False):
    return Attempt(
        user_id=user,
        test_series_id=series_id,
        test_id=test_id,
        is_admin_attempt=admin,
        status=AttemptStatus.IN_PROGRESS,
        started_at=utcnow(),
        snapshot={"test_name": "Mock Test"},
    )


def locked():
    return OperationalError("UPDATE attempts", {}, Exception("database is locked"))


def test_insert_attempt_rejects_second_for_same_triple(make_test):
    sid, (tid,) = make_test()
    with SessionLocal() as db:
        store.insert_attempt(db, new_attempt(sid, tid))
        with pytest.raises(store.AttemptExists):
            store.insert_attempt(db, new_attempt(sid, tid))

        # admin previews are exempt from the index
        store.insert_attempt(db, new_attempt(sid, tid, admin=True))
        store.insert_attempt(db, new_attempt(sid, tid, admin=True))
        assert db.query(Attempt).count() == 3


def test_transition_happens_once(make_test):
    sid, (tid,) = make_test()
    now = utcnow()
    with SessionLocal() as db:
        attempt_id = store.insert_attempt(db, new_attempt(sid, tid)).id

        assert store.transition_to_submitted(db, attempt_id, now) is True
        db.commit()
        assert store.transition_to_submitted(db, attempt_id, now + timedelta(seconds=5)) is False
        assert store.touch_in_progress(db, attempt_id, now) is False
        db.rollback()

        a = db.get(Attempt, attempt_id, populate_existing=True)
        assert a.status == AttemptStatus.SUBMITTED
        assert a.result_generated is True
        assert store.count_in_progress(db) == 0


def test_retries_transient_errors():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise locked()
        return "done"

    with SessionLocal() as db:
        assert store.run_with_retries(db, flaky, attempts=3) == "done"
    assert len(calls) == 3


def test_retry_exhaustion_is_transient_store_error():
    def always_locked():
        raise locked()

    with SessionLocal() as db:
        with pytest.raises(TransientStoreError) as exc:
            store.run_with_retries(db, always_locked, attempts=2)
    assert exc.value.status_code == 503
