"""Token endpoints — qualified list, CSV export, stats, thresholds."""

from __future__ import annotations

import csv
import io
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.api.dependencies import get_session
from src.models.mint import FetchLog, Mint
from src.parsers.persistence import (
    MintFilters,
    count_qualified_mints,
    get_qualified_mints,
    get_recent_fetch_logs,
    get_stats,
)

router = APIRouter(prefix="/api", tags=["tokens"])

CSV_HEADER = [
    "mint_address",
    "token_name",
    "token_symbol",
    "price_usd",
    "liquidity_usd",
    "market_cap_usd",
    "fdv_usd",
    "minted_at_utc",
    "solscan_url",
    "dex_url",
    "tx_signature",
]


def _filters(
    start_time: int | None = Query(None, alias="startTime", ge=0),
    end_time: int | None = Query(None, alias="endTime", ge=0),
    min_liquidity: float | None = Query(None, alias="minLiquidity", ge=0),
    min_market_cap: float | None = Query(None, alias="minMarketCap", ge=0),
    limit: int | None = Query(None, ge=1),
    offset: int | None = Query(None, ge=0),
) -> MintFilters:
    if limit is not None:
        limit = min(limit, settings.api_max_page_size)
    return MintFilters(
        start_time=start_time,
        end_time=end_time,
        min_liquidity=min_liquidity,
        min_market_cap=min_market_cap,
        limit=limit,
        offset=offset,
    )


def mint_to_dict(mint: Mint) -> dict[str, Any]:
    return {
        "mint_address": mint.address,
        "tx_signature": mint.tx_signature,
        "minted_at": mint.minted_at,
        "discovered_at": mint.discovered_at,
        "token_program": mint.token_program,
        "status": mint.status,
        "token_name": mint.token_name,
        "token_symbol": mint.token_symbol,
        "price_usd": mint.price_usd,
        "liquidity_usd": mint.liquidity_usd,
        "market_cap_usd": mint.market_cap_usd,
        "fdv_usd": mint.fdv_usd,
        "dex_url": mint.dex_url,
        "pair_address": mint.pair_address,
        "enriched_at": mint.enriched_at,
        "retry_count": mint.retry_count,
    }


def fetch_log_to_dict(log: FetchLog) -> dict[str, Any]:
    return {
        "id": log.id,
        "started_at": log.started_at,
        "completed_at": log.completed_at,
        "window_start": log.window_start,
        "window_end": log.window_end,
        "mints_discovered": log.mints_discovered,
        "mints_qualified": log.mints_qualified,
        "status": log.status,
        "error": log.error,
    }


def mints_to_csv(mints: list[Mint]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for m in mints:
        writer.writerow([
            m.address,
            m.token_name or "",
            m.token_symbol or "",
            "" if m.price_usd is None else m.price_usd,
            "" if m.liquidity_usd is None else m.liquidity_usd,
            "" if m.market_cap_usd is None else m.market_cap_usd,
            "" if m.fdv_usd is None else m.fdv_usd,
            datetime.fromtimestamp(m.minted_at, UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            f"https://solscan.io/token/{m.address}",
            m.dex_url or "",
            m.tx_signature,
        ])
    return buf.getvalue()


@router.get("/tokens")
async def list_tokens(
    filters: MintFilters = Depends(_filters),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Qualified tokens, newest mint first, with offset pagination."""
    if filters.limit is None:
        filters.limit = 50
    if filters.offset is None:
        filters.offset = 0

    tokens = await get_qualified_mints(session, filters)
    total = await count_qualified_mints(session, filters)
    return {
        "tokens": [mint_to_dict(m) for m in tokens],
        "total": total,
        "limit": filters.limit,
        "offset": filters.offset,
    }


@router.get("/tokens/csv")
async def export_tokens_csv(
    filters: MintFilters = Depends(_filters),
    session: AsyncSession = Depends(get_session),
) -> Response:
    mints = await get_qualified_mints(session, filters)
    timestamp = datetime.now(UTC).isoformat().replace(":", "-").replace(".", "-")
    return Response(
        content=mints_to_csv(mints),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=tokens-{timestamp}.csv"},
    )


@router.get("/stats")
async def stats(session: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    mint_stats = await get_stats(session)
    recent = await get_recent_fetch_logs(session, 10)
    return {
        "stats": {
            "totalMints": mint_stats.total_mints,
            "qualified": mint_stats.qualified,
            "pending": mint_stats.pending,
            "noPool": mint_stats.no_pool,
            "belowThreshold": mint_stats.below_threshold,
        },
        "recentFetches": [fetch_log_to_dict(log) for log in recent],
    }


@router.get("/config")
async def current_config() -> dict[str, Any]:
    return {
        "minMarketCapUsd": settings.min_market_cap_usd,
        "minLiquidityUsd": settings.min_liquidity_usd,
        "overlapMinutes": settings.overlap_minutes,
        "fetchIntervalHours": settings.fetch_interval_hours,
    }
