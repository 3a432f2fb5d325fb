"""Data persistence layer — mints and fetch-run history.

Functions flush but never commit; the caller owns the transaction boundary.
Every write touches a single row keyed by mint address or run id.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.mint import FetchLog, FetchStatus, Mint, MintStatus
from src.parsers.enrichment import EnrichmentResult
from src.parsers.mint_discovery import DiscoveredMint

REENRICH_STATUSES = (MintStatus.QUALIFIED.value, MintStatus.BELOW_THRESHOLD.value)


def _now() -> int:
    return int(time.time())


def _sanitize(val: str | None) -> str | None:
    """Strip null bytes and control chars that PostgreSQL rejects."""
    if val is None:
        return None
    return val.replace("\x00", "").strip() or None


def _insert_for(session: AsyncSession):
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


# ── Mints ────────────────────────────────────────────────────────────


async def insert_mint(session: AsyncSession, mint: DiscoveredMint) -> bool:
    """Insert a newly seen mint. Existing rows are left untouched.

    Returns True when a row was created.
    """
    insert = _insert_for(session)
    stmt = (
        insert(Mint)
        .values(
            address=mint.address,
            tx_signature=mint.tx_signature,
            minted_at=mint.minted_at,
            discovered_at=mint.discovered_at,
            token_program=mint.token_program.value,
            status=MintStatus.PENDING.value,
            retry_count=0,
        )
        .on_conflict_do_nothing(index_elements=["address"])
    )
    result = await session.execute(stmt)
    await session.flush()
    return bool(result.rowcount)


async def insert_mints(session: AsyncSession, mints: Iterable[DiscoveredMint]) -> int:
    inserted = 0
    for mint in mints:
        if await insert_mint(session, mint):
            inserted += 1
    return inserted


async def get_mint(session: AsyncSession, address: str) -> Mint | None:
    result = await session.execute(
        select(Mint)
        .where(Mint.address == address)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_pending_mints(session: AsyncSession) -> list[Mint]:
    """Mints still waiting for a pool, oldest mint first."""
    result = await session.execute(
        select(Mint)
        .where(Mint.status == MintStatus.PENDING.value)
        .order_by(Mint.minted_at.asc())
    )
    return list(result.scalars().all())


async def get_mints_for_reenrichment(
    session: AsyncSession, older_than_sec: float, *, now: int | None = None
) -> list[Mint]:
    """Classified mints whose market data is older than ``older_than_sec``.

    Never-enriched rows come first, then the stalest.
    """
    cutoff = (now if now is not None else _now()) - int(older_than_sec)
    result = await session.execute(
        select(Mint)
        .where(
            Mint.status.in_(REENRICH_STATUSES),
            (Mint.enriched_at.is_(None)) | (Mint.enriched_at < cutoff),
        )
        .order_by(Mint.enriched_at.asc().nulls_first(), Mint.minted_at.asc())
    )
    return list(result.scalars().all())


async def update_mint_enrichment(
    session: AsyncSession,
    address: str,
    data: EnrichmentResult,
    *,
    now: int | None = None,
) -> None:
    await session.execute(
        update(Mint)
        .where(Mint.address == address)
        .values(
            token_name=_sanitize(data.token_name),
            token_symbol=_sanitize(data.token_symbol),
            price_usd=data.price_usd,
            liquidity_usd=data.liquidity_usd,
            market_cap_usd=data.market_cap_usd,
            fdv_usd=data.fdv_usd,
            dex_url=data.dex_url,
            pair_address=data.pair_address,
            status=data.status.value,
            enriched_at=now if now is not None else _now(),
        )
    )
    await session.flush()


async def increment_retry_count(
    session: AsyncSession, address: str, max_retries: int
) -> MintStatus | None:
    """Count one more failed lookup; give up as ``no_pool`` at ``max_retries``.

    Only pending mints are affected. Returns the status after the update, or
    None if the address is unknown.
    """
    await session.execute(
        update(Mint)
        .where(Mint.address == address, Mint.status == MintStatus.PENDING.value)
        .values(
            retry_count=Mint.retry_count + 1,
            status=case(
                (Mint.retry_count + 1 >= max_retries, MintStatus.NO_POOL.value),
                else_=Mint.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    result = await session.execute(select(Mint.status).where(Mint.address == address))
    status = result.scalar_one_or_none()
    return MintStatus(status) if status is not None else None


# ── Fetch log ────────────────────────────────────────────────────────


async def get_last_window_end(session: AsyncSession) -> int | None:
    """window_end of the most recent completed run."""
    result = await session.execute(
        select(FetchLog.window_end)
        .where(FetchLog.status == FetchStatus.COMPLETED.value)
        .order_by(FetchLog.window_end.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_fetch_log(
    session: AsyncSession, window_start: int, window_end: int, *, now: int | None = None
) -> int:
    log = FetchLog(
        started_at=now if now is not None else _now(),
        window_start=window_start,
        window_end=window_end,
        mints_discovered=0,
        mints_qualified=0,
        status=FetchStatus.RUNNING.value,
    )
    session.add(log)
    await session.flush()
    return log.id


async def complete_fetch_log(
    session: AsyncSession, log_id: int, mints_discovered: int, mints_qualified: int
) -> None:
    await session.execute(
        update(FetchLog)
        .where(FetchLog.id == log_id)
        .values(
            completed_at=_now(),
            mints_discovered=mints_discovered,
            mints_qualified=mints_qualified,
            status=FetchStatus.COMPLETED.value,
        )
    )
    await session.flush()


async def fail_fetch_log(session: AsyncSession, log_id: int, error: str | None = None) -> None:
    await session.execute(
        update(FetchLog)
        .where(FetchLog.id == log_id)
        .values(
            completed_at=_now(),
            status=FetchStatus.FAILED.value,
            error=error[:2000] if error else None,
        )
    )
    await session.flush()


async def get_fetch_log(session: AsyncSession, log_id: int) -> FetchLog | None:
    result = await session.execute(
        select(FetchLog)
        .where(FetchLog.id == log_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_recent_fetch_logs(session: AsyncSession, limit: int = 10) -> list[FetchLog]:
    result = await session.execute(
        select(FetchLog).order_by(FetchLog.started_at.desc(), FetchLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


# ── Read surface (dashboard / CSV) ───────────────────────────────────


@dataclass
class MintFilters:
    start_time: int | None = None
    end_time: int | None = None
    min_liquidity: float | None = None
    min_market_cap: float | None = None
    limit: int | None = None
    offset: int | None = None


@dataclass
class MintStats:
    total_mints: int = 0
    qualified: int = 0
    pending: int = 0
    no_pool: int = 0
    below_threshold: int = 0


def _qualified_query(filters: MintFilters, stmt):
    stmt = stmt.where(Mint.status == MintStatus.QUALIFIED.value)
    if filters.start_time:
        stmt = stmt.where(Mint.minted_at >= filters.start_time)
    if filters.end_time:
        stmt = stmt.where(Mint.minted_at <= filters.end_time)
    if filters.min_liquidity:
        stmt = stmt.where(Mint.liquidity_usd >= filters.min_liquidity)
    if filters.min_market_cap:
        stmt = stmt.where(Mint.market_cap_usd >= filters.min_market_cap)
    return stmt


async def get_qualified_mints(
    session: AsyncSession, filters: MintFilters | None = None
) -> list[Mint]:
    """Qualified mints, newest first. No limit means all rows (CSV export)."""
    filters = filters or MintFilters()
    stmt = _qualified_query(filters, select(Mint)).order_by(Mint.minted_at.desc())
    if filters.limit:
        stmt = stmt.limit(filters.limit)
    if filters.offset:
        stmt = stmt.offset(filters.offset)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_qualified_mints(
    session: AsyncSession, filters: MintFilters | None = None
) -> int:
    stmt = _qualified_query(filters or MintFilters(), select(func.count()).select_from(Mint))
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def get_stats(session: AsyncSession) -> MintStats:
    def _count(status: MintStatus):
        return func.coalesce(func.sum(case((Mint.status == status.value, 1), else_=0)), 0)

    result = await session.execute(
        select(
            func.count(),
            _count(MintStatus.QUALIFIED),
            _count(MintStatus.PENDING),
            _count(MintStatus.NO_POOL),
            _count(MintStatus.BELOW_THRESHOLD),
        ).select_from(Mint)
    )
    total, qualified, pending, no_pool, below = result.one()
    return MintStats(
        total_mints=int(total),
        qualified=int(qualified),
        pending=int(pending),
        no_pool=int(no_pool),
        below_threshold=int(below),
    )
