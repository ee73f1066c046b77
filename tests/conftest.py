import copy
import os
import tempfile

# must be in place before db.py builds the engine
_tmp = tempfile.mkdtemp(prefix="cbt-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp}/test.db"
os.environ["AUTO_SUBMIT_ENABLED"] = "0"
os.environ["STORE_RETRY_ATTEMPTS"] = "10"
os.environ["ADMIN_TOKEN"] = "test-admin-token"

import pytest  # noqa: E402

import ranking  # noqa: E402
from db import Base, SessionLocal, engine  # noqa: E402
from models import Entitlement, Test, TestSeries  # noqa: E402

# 3 questions, 8 marks: q1/q2 are +2/-0.5, q3 is +4/-1
SECTIONS = [
    {
        "id": "s1",
        "title": "Quantitative Aptitude",
        "questions": [
            {
                "id": "q1",
                "question_number": 1,
                "question_text": "What is 2 + 2?",
                "options": ["3", "4", "5", "6"],
                "correct_option_index": 1,
                "explanation": "Basic addition.",
                "marks": 2,
                "negative_marks": 0.5,
            },
            {
                "id": "q2",
                "question_number": 2,
                "question_text": "What is 10 / 2?",
                "options": ["5", "2", "20", "8"],
                "correct_option_index": 0,
                "explanation": "Basic division.",
                "marks": 2,
                "negative_marks": 0.5,
            },
        ],
    },
    {
        "id": "s2",
        "title": "Reasoning",
        "questions": [
            {
                "id": "q3",
                "question_number": 3,
                "question_text": "Odd one out: 2, 4, 7, 8",
                "options": ["2", "4", "7", "8"],
                "correct_option_index": 2,
                "explanation": "7 is the only odd number.",
                "marks": 4,
                "negative_marks": 1,
            }
        ],
    },
]


@pytest.fixture(autouse=True)
def fresh_db():
    ranking.wait_for_pending(timeout=10)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    ranking.wait_for_pending(timeout=10)


@pytest.fixture
def make_test():
    """Create a series with `count` tests; returns (series_id, [test_ids])."""

    def _make(
        count=1,
        access_type="PAID",
        free_quota=2,
        duration=3600,
        start_time=None,
        end_time=None,
        sections=None,
        cutoffs=None,
    ):
        with SessionLocal() as db:
            series = TestSeries(name="Mock Series", access_type=access_type, free_quota=free_quota)
            db.add(series)
            db.flush()
            test_ids = []
            for position in range(count):
                test = Test(
                    series_id=series.id,
                    position=position,
                    test_name=f"Mock Test {position + 1}",
                    duration_in_seconds=duration,
                    start_time=start_time,
                    end_time=end_time,
                    sections=copy.deepcopy(sections if sections is not None else SECTIONS),
                    cutoffs=cutoffs,
                )
                db.add(test)
                db.flush()
                test_ids.append(test.id)
            db.commit()
            return series.id, test_ids

    return _make


@pytest.fixture
def grant():
    def _grant(user_id, series_id, status="completed", expiry_date=None, item_type="TestSeries"):
        with SessionLocal() as db:
            db.add(
                Entitlement(
                    user_id=user_id,
                    item_type=item_type,
                    item_id=str(series_id),
                    status=status,
                    expiry_date=expiry_date,
                )
            )
            db.commit()

    return _grant
