# routers/health.py
from fastapi import APIRouter, HTTPException
from sqlalchemy import text

import store
from alembic.config import Config
from alembic.script import ScriptDirectory
from db import SessionLocal, engine
from scheduler import auto_submit

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/db")
def health_db():
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            in_progress = store.count_in_progress(db)
        return {"ok": True, "in_progress_attempts": in_progress}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"db_error: {type(e).__name__}: {e}")


@router.get("/scheduler")
def health_scheduler():
    return {"ok": True, **auto_submit.status()}


def _alembic_heads() -> list[str]:
    cfg = Config("alembic.ini")
    script = ScriptDirectory.from_config(cfg)
    return list(script.get_heads())


@router.get("/migrations")
def health_migrations():
    heads: list[str] = []
    db_ver = None
    try:
        heads = _alembic_heads()
    except Exception:
        heads = []

    try:
        with engine.connect() as conn:
            try:
                db_ver = conn.execute(
                    text("SELECT version_num FROM alembic_version")
                ).scalar_one_or_none()
            except Exception:
                db_ver = None
    except Exception as e:
        return {
            "ok": False,
            "error": f"db_connect_failed: {e}",
            "code_heads": heads,
            "db_version": db_ver,
        }

    synced = (db_ver in heads) if heads else False
    return {"ok": synced, "synced": synced, "db_version": db_ver, "code_heads": heads}
