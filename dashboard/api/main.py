"""
CRM Pulse — API Server
========================

Serves the processed dashboard snapshots and runs the analytics engine on
posted record batches.

Route groups:
  /api/health              - Health check
  /api/metrics/*           - Dashboard snapshots and on-demand computation
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analytics.lib.errors import ConfigError, EngineError, InputContractError
from dashboard.api.routers.metrics import processed_dir
from dashboard.api.routers.metrics import router as metrics_router

load_dotenv()

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting CRM Pulse...")
    logger.info("Serving processed snapshots from %s", processed_dir())
    yield
    logger.info("Shutting down CRM Pulse...")


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
).split(",")

app = FastAPI(
    title="CRM Pulse",
    version=VERSION,
    description="CRM analytics: lead funnel, call activity and agent performance",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(metrics_router)


# ─── Error Mapping ────────────────────────────────────────────

@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    """Map engine errors to JSON responses with their error code."""
    if isinstance(exc, ConfigError):
        status = 400
    elif isinstance(exc, InputContractError):
        status = 422
    else:
        status = 500
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "code": exc.code, "details": exc.details},
    )


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"])
async def health():
    """Health check with snapshot availability."""
    root = processed_dir()
    return {
        "status": "healthy",
        "service": "CRM Pulse",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "snapshots": {
            name: (root / f"{name}.json").exists()
            for name in ("metrics", "call_analysis", "duration_insights")
        },
    }
