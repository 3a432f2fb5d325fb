"""Dashboard server — runs uvicorn inside the existing asyncio event loop."""

from __future__ import annotations

import uvicorn
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.parsers.pipeline import PipelineOrchestrator


async def run_dashboard_server(
    orchestrator: PipelineOrchestrator,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Start uvicorn serving the FastAPI dashboard.

    Runs as an asyncio task next to the scheduler so the trigger endpoint and
    the scheduler share one orchestrator.
    """
    from src.api.app import create_app

    app = create_app(orchestrator, session_factory)
    config = uvicorn.Config(
        app=app,
        host=settings.dashboard_host,
        port=settings.dashboard_port,
        log_level="warning",
        loop="none",  # use the existing event loop
    )
    server = uvicorn.Server(config)
    logger.info(f"[API] Dashboard starting on http://{settings.dashboard_host}:{settings.dashboard_port}")
    await server.serve()
