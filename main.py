import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import ranking
from errors import ExamError

# Routers
from routers.admin import router as admin_router
from routers.attempts import router as attempts_router
from routers.health import router as health_router
from scheduler import auto_submit
from schemas.attempts import ErrorOut

logger = logging.getLogger("cbt-engine")
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # attempts may have been left running by a previous process
    auto_submit.reconcile_from_store()
    logger.info("CBT exam engine started")
    yield
    auto_submit.stop()
    ranking.wait_for_pending(timeout=10)
    logger.info("CBT exam engine stopped")


app = FastAPI(title="CBT Exam Engine API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "x-user-id", "x-admin-token", "x-user-category"],
)


@app.exception_handler(ExamError)
async def exam_error_handler(request: Request, exc: ExamError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=ErrorOut(detail=exc.reason).model_dump())


@app.get("/")
def health_root():
    return {"ok": True}


# Register routers
app.include_router(attempts_router)  # /attempts/...
app.include_router(admin_router)  # /admin/...
app.include_router(health_router)  # /health/...
