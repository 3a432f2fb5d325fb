"""FastAPI application factory for the mint monitor dashboard."""

from __future__ import annotations

import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.cors import CORSMiddleware

from src.api.middleware import SecurityHeadersMiddleware
from src.parsers.pipeline import PipelineOrchestrator

# Rate limiter (shared instance)
limiter = Limiter(key_func=get_remote_address)

FRONTEND_DIST = Path(__file__).resolve().parent.parent.parent / "dist" / "client"


def create_app(
    orchestrator: PipelineOrchestrator,
    session_factory: async_sessionmaker[AsyncSession],
) -> FastAPI:
    """Build and configure the FastAPI application."""
    app = FastAPI(
        title="Mint Monitor API",
        version="0.1.0",
        docs_url="/api/docs" if os.getenv("DASHBOARD_DEBUG") else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if os.getenv("DASHBOARD_DEBUG") else None,
    )
    app.state.orchestrator = orchestrator
    app.state.session_factory = session_factory

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(SecurityHeadersMiddleware)

    # CORS: dev only (Vite on :5173 -> API)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    from src.api.routers.fetch import router as fetch_router
    from src.api.routers.health import router as health_router
    from src.api.routers.tokens import router as tokens_router

    app.include_router(health_router)
    app.include_router(fetch_router)
    app.include_router(tokens_router)

    # Serve frontend (production build)
    if FRONTEND_DIST.exists():
        app.mount(
            "/assets",
            StaticFiles(directory=str(FRONTEND_DIST / "assets")),
            name="static-assets",
        )

        index_html = FRONTEND_DIST / "index.html"

        @app.get("/{full_path:path}")
        async def spa_fallback(full_path: str) -> FileResponse:
            file = FRONTEND_DIST / full_path
            if full_path and file.exists() and file.is_file():
                return FileResponse(file)
            return FileResponse(index_html)

    return app
