from fastapi.testclient import TestClient

import ranking
from db import SessionLocal
from main import app
from models import Attempt, RankingEntry

client = TestClient(app)

ADMIN = {"x-user-id": "admin-1", "x-admin-token": "test-admin-token"}


def test_admin_routes_need_token(make_test):
    sid, (tid,) = make_test()
    r = client.post(f"/admin/attempts/{sid}/{tid}/start", headers={"x-user-id": "admin-1"})
    assert r.status_code == 401

    r = client.get("/admin/scheduler", headers={"x-admin-token": "wrong"})
    assert r.status_code == 401


def test_admin_token_not_configured(monkeypatch):
    monkeypatch.setenv("ADMIN_TOKEN", "")
    r = client.get("/admin/scheduler", headers=ADMIN)
    assert r.status_code == 500


def test_admin_preview_is_repeatable_and_unranked(make_test):
    sid, (tid,) = make_test(free_quota=0)

    scores = []
    for option in (1, 0):
        r = client.post(f"/admin/attempts/{sid}/{tid}/start", headers=ADMIN)
        assert r.status_code == 201
        r = client.post(
            f"/admin/attempts/{sid}/{tid}/submit-question",
            json={"questionId": "q1", "selectedOption": option},
            headers=ADMIN,
        )
        assert r.json() == {"success": True}
        r = client.post(f"/admin/attempts/{sid}/{tid}/submit", headers=ADMIN)
        assert r.status_code == 200
        scores.append(r.json()["score"])
    ranking.wait_for_pending(timeout=10)

    assert scores == [2, -0.5]
    with SessionLocal() as db:
        attempts = db.query(Attempt).filter(Attempt.test_id == tid).all()
        assert len(attempts) == 2
        assert all(a.is_admin_attempt for a in attempts)
        assert db.query(RankingEntry).count() == 0


def test_admin_preview_does_not_block_regular_attempt(make_test):
    sid, (tid,) = make_test()
    client.post(f"/admin/attempts/{sid}/{tid}/start", headers=ADMIN)

    r = client.post(f"/attempts/{sid}/{tid}/start", headers={"x-user-id": "admin-1"})
    assert r.status_code == 201
    assert r.json()["resumed"] is False


def test_admin_submit_without_preview_is_404(make_test):
    sid, (tid,) = make_test()
    r = client.post(f"/admin/attempts/{sid}/{tid}/submit", headers=ADMIN)
    assert r.status_code == 404
    assert r.json()["detail"] == "No active test attempt found"


def test_scheduler_status_and_manual_sweep(make_test):
    r = client.get("/admin/scheduler", headers=ADMIN)
    assert r.status_code == 200
    body = r.json()
    assert body["enabled"] is False
    assert body["isActive"] is False

    r = client.post("/admin/scheduler/sweep", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["processed"] == 0
    assert r.json()["status"]["activeCount"] == 0


def test_admin_preview_result_has_no_cutoff_analysis(make_test):
    sid, (tid,) = make_test(cutoffs={"general": 1})
    client.post(f"/admin/attempts/{sid}/{tid}/start", headers=ADMIN)
    attempt_id = client.post(f"/admin/attempts/{sid}/{tid}/submit", headers=ADMIN).json()["attemptId"]

    r = client.get(f"/attempts/{attempt_id}/result", headers={**ADMIN, "x-user-category": "general"})
    assert r.status_code == 200
    body = r.json()
    assert body["cutoffAnalysis"] is None
    assert body["userSummary"]["rank"] is None
