"""
joyrewards.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn joyrewards.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from joyrewards.api.deps import get_engine, get_policy  # noqa: E402
from joyrewards.api.routes.admin import router as admin_router  # noqa: E402
from joyrewards.api.routes.coins import router as coins_router  # noqa: E402
from joyrewards.api.routes.jobs import router as jobs_router  # noqa: E402
from joyrewards.api.routes.stickers import router as stickers_router  # noqa: E402
from joyrewards.api.routes.streaks import router as streaks_router  # noqa: E402
from joyrewards.database.engine import init_db  # noqa: E402
from joyrewards.errors import RewardError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — ensure schema, seed, warm the policy cache."""
    engine = get_engine()
    init_db(engine)
    get_policy().load_all()
    logger.info("JoyRewards API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("JoyRewards API shutting down")


app = FastAPI(
    title="JoyRewards API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RewardError)
async def reward_error_handler(request: Request, exc: RewardError) -> JSONResponse:
    """Expected domain failures → 400 ``{"error": reason}``."""
    logger.info("%s %s refused: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=400, content={"error": str(exc)})


# Mount routers
app.include_router(coins_router, prefix="/api")
app.include_router(stickers_router, prefix="/api")
app.include_router(streaks_router, prefix="/api")
app.include_router(jobs_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
