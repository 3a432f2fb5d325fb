"""Fetch pipeline endpoints — manual trigger and status polling."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from loguru import logger

from config.settings import settings
from src.api.app import limiter
from src.api.dependencies import get_orchestrator
from src.parsers.pipeline import ALREADY_RUNNING, PipelineOrchestrator

router = APIRouter(prefix="/api/fetch", tags=["fetch"])


@router.post("/trigger")
@limiter.limit(settings.api_trigger_rate_limit)
async def trigger_fetch(
    request: Request,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Start a pipeline run in the background unless one is active."""
    result = orchestrator.start_run()
    if result == ALREADY_RUNNING:
        return {"status": ALREADY_RUNNING, "progress": orchestrator.status().progress}
    logger.info("[API] Manual fetch triggered")
    return {"status": result}


@router.get("/status")
async def fetch_status(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    status = orchestrator.status()
    return {"running": status.running, "progress": status.progress}
