"""FastAPI application: health, metrics, CORS, SSE and the voting/scoring APIs."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import PlainTextResponse, Response

from gymkana.api.live import router as live_router
from gymkana.api.votes import router as votes_router
from gymkana.config import settings
from gymkana.db import async_session_factory, init_models
from gymkana.logging_config import SERVICE_NAME, setup_logging
from gymkana.notifier import build_notifier
from gymkana.store import DataStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan setup / teardown."""
    setup_logging()
    if settings.DB_AUTO_CREATE:
        await init_models()
    notifier = build_notifier(settings)
    await notifier.start()
    app.state.notifier = notifier
    app.state.store = DataStore(async_session_factory, notifier)
    logger.info(
        "Gymkana API starting",
        extra={"env": settings.APP_ENV, "notifier": settings.NOTIFIER_BACKEND},
    )
    yield
    await notifier.close()
    logger.info("Gymkana API shutting down")


app = FastAPI(
    title="Gymkana Live",
    version="0.1.0",
    description="Live scoring, voting and realtime leaderboard for gymkana events",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(votes_router)
app.include_router(live_router)


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": SERVICE_NAME}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
