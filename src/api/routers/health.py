"""Health check — database connectivity and pipeline state."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_orchestrator, get_session
from src.parsers.pipeline import PipelineOrchestrator

router = APIRouter(prefix="/api", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    db_ok: bool
    pipeline_running: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(
    session: AsyncSession = Depends(get_session),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> HealthResponse:
    db_ok = False
    try:
        await session.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as e:
        logger.warning(f"[API] Health check DB error: {e}")

    return HealthResponse(
        status="ok" if db_ok else "degraded",
        version="0.1.0",
        db_ok=db_ok,
        pipeline_running=orchestrator.is_running,
    )
