"""
CRM Pulse — Metrics Router
============================
Dashboard snapshot endpoints.

Endpoints:
  GET  /api/metrics/snapshot          - Main dashboard snapshot (metrics.json)
  GET  /api/metrics/calls             - Call analysis (call_analysis.json)
  GET  /api/metrics/duration-outcome  - Duration vs outcome (duration_insights.json)
  POST /api/metrics/compute           - Run the engine on a posted record batch
"""
from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from analytics.config import BASE_DIR, load_config
from analytics.lib.logger import setup_logger
from analytics.snapshot import SnapshotAssembler

logger = setup_logger("metrics_router")

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


def processed_dir() -> Path:
    """Directory holding the runner's outputs (``PROCESSED_DIR`` overrides)."""
    return Path(os.getenv("PROCESSED_DIR", str(BASE_DIR / "data" / "processed")))


def _load_processed(filename: str) -> JSONResponse:
    path = processed_dir() / filename
    if not path.exists():
        raise HTTPException(
            status_code=404,
            detail=f"No {filename} yet. Run: python -m analytics.crm_snapshot",
        )
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load %s: %s", path, e)
        raise HTTPException(status_code=500, detail=f"Failed to load {filename}")
    return JSONResponse(content=data)


# ─── Request Models ───────────────────────────────────────────

class ComputeRequest(BaseModel):
    leads: List[Dict[str, Any]] = Field(default_factory=list)
    calls: List[Dict[str, Any]] = Field(default_factory=list)
    deals: List[Dict[str, Any]] = Field(default_factory=list)
    tasks: List[Dict[str, Any]] = Field(default_factory=list)
    config: Optional[Dict[str, Any]] = None
    now: Optional[datetime] = None
    include: List[str] = Field(default_factory=lambda: ["snapshot"])


# ─── Endpoints ────────────────────────────────────────────────

@router.get("/snapshot")
async def snapshot():
    """Latest main dashboard snapshot."""
    return _load_processed("metrics.json")


@router.get("/calls")
async def call_analysis():
    """Latest standalone call analysis."""
    return _load_processed("call_analysis.json")


@router.get("/duration-outcome")
async def duration_outcome():
    """Latest per-agent duration vs outcome analysis."""
    return _load_processed("duration_insights.json")


@router.post("/compute")
async def compute(req: ComputeRequest):
    """Run the engine on the posted records.

    ``include`` selects the outputs: any of ``snapshot``, ``calls`` and
    ``durationOutcome``; the last has the same shape as
    duration_insights.json. Posted ``config`` values override the server's
    configuration.
    """
    unknown = set(req.include) - {"snapshot", "calls", "durationOutcome"}
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown outputs: {sorted(unknown)}")

    assembler = SnapshotAssembler(load_config(overrides=req.config), req.now)
    result: Dict[str, Any] = {}
    if "snapshot" in req.include:
        result["snapshot"] = assembler.build(req.leads, req.calls, req.deals, req.tasks)
    if "calls" in req.include:
        result["calls"] = assembler.build_call_snapshot(req.calls)
    if "durationOutcome" in req.include:
        result["durationOutcome"] = assembler.build_duration_insights(req.leads, req.calls)
    logger.info(
        "Computed %s for %d leads, %d calls",
        ", ".join(req.include), len(req.leads), len(req.calls),
    )
    return result
