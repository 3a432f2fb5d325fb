"""FastAPI dependency injection — DB session and pipeline orchestrator."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.parsers.pipeline import PipelineOrchestrator


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session from the app's session factory (auto-closes)."""
    async with request.app.state.session_factory() as session:
        yield session


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator
