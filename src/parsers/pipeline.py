"""Fetch pipeline — discover new mints, persist, enrich, re-enrich.

Only one run may be active per process. The running flag and progress text
live in a single immutable ``PipelineStatus`` that is swapped on every
change, so pollers (dashboard, scheduler) always see a consistent pair.

Run sequence:
  1. window = [last completed window_end - overlap, now] (or now - 24h)
  2. fetch_log row in ``running``
  3. discover every token program concurrently, persist each as it finishes
  4. enrich pending mints; unresolved ones count a retry (no_pool at max)
  5. re-enrich stale qualified/below_threshold mints; unresolved are left alone
  6. fetch_log -> completed
Any error in 1-5 marks the fetch_log ``failed`` and is re-raised. Mints
persisted before the failure stay.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from threading import Lock

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.mint import MintStatus, TokenProgram
from src.parsers.enrichment import EnrichmentClient, EnrichmentResult
from src.parsers.exceptions import PipelineAlreadyRunningError
from src.parsers.mint_discovery import DiscoveredMint, MintDiscoverer
from src.parsers.persistence import (
    complete_fetch_log,
    create_fetch_log,
    fail_fetch_log,
    get_last_window_end,
    get_mints_for_reenrichment,
    get_pending_mints,
    increment_retry_count,
    insert_mints,
    update_mint_enrichment,
)

STARTED = "started"
ALREADY_RUNNING = "already_running"

PROGRAM_LABELS = {
    TokenProgram.SPL: "SPL",
    TokenProgram.TOKEN_2022: "Token-2022",
}


@dataclass(frozen=True)
class PipelineStatus:
    running: bool
    progress: str


@dataclass(frozen=True)
class RunResult:
    run_id: int
    discovered: int
    qualified: int


def compute_window(
    last_window_end: int | None,
    now: int,
    *,
    overlap_minutes: int,
    bootstrap_lookback_hours: float = 24,
) -> tuple[int, int]:
    """Discovery window for the next run, overlapping the previous one."""
    if last_window_end is not None:
        start = last_window_end - overlap_minutes * 60
    else:
        start = now - int(bootstrap_lookback_hours * 3600)
    return start, now


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat()


class PipelineOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        discoverer: MintDiscoverer,
        enricher: EnrichmentClient,
        *,
        overlap_minutes: int = 30,
        bootstrap_lookback_hours: float = 24,
        max_retries_no_pool: int = 3,
        reenrich_stale_hours: float = 4.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._discoverer = discoverer
        self._enricher = enricher
        self._overlap_minutes = overlap_minutes
        self._bootstrap_lookback_hours = bootstrap_lookback_hours
        self._max_retries_no_pool = max_retries_no_pool
        self._reenrich_stale_sec = reenrich_stale_hours * 3600
        self._clock = clock

        self._lock = Lock()
        self._status = PipelineStatus(running=False, progress="")
        self._task: asyncio.Task | None = None

    # ── Status channel ───────────────────────────────────────────────

    def status(self) -> PipelineStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status.running

    def _set_progress(self, progress: str) -> None:
        with self._lock:
            self._status = PipelineStatus(running=self._status.running, progress=progress)

    def _try_acquire(self) -> bool:
        with self._lock:
            if self._status.running:
                return False
            self._status = PipelineStatus(running=True, progress="Starting...")
            return True

    def _release(self) -> None:
        with self._lock:
            self._status = PipelineStatus(running=False, progress=self._status.progress)

    # ── Entry points ─────────────────────────────────────────────────

    async def run(self) -> RunResult:
        """Execute one run inline. Raises PipelineAlreadyRunningError if busy."""
        if not self._try_acquire():
            raise PipelineAlreadyRunningError("Pipeline is already running")
        try:
            return await self._execute()
        finally:
            self._release()

    def start_run(self) -> str:
        """Start a run in the background; never queues behind an active one."""
        if not self._try_acquire():
            return ALREADY_RUNNING
        try:
            self._task = asyncio.get_running_loop().create_task(
                self._run_in_background(), name="fetch_pipeline"
            )
        except RuntimeError:
            self._release()
            raise
        return STARTED

    async def wait(self) -> None:
        """Wait for the current background run, if any, to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run_in_background(self) -> RunResult | None:
        try:
            return await self._execute()
        except Exception as e:
            logger.error(f"[PIPELINE] Background run failed: {e}")
            return None
        finally:
            self._release()

    # ── Run body ─────────────────────────────────────────────────────

    async def _execute(self) -> RunResult:
        run_id: int | None = None
        async with self._session_factory() as session:
            try:
                now = int(self._clock())
                last_end = await get_last_window_end(session)
                start_time, end_time = compute_window(
                    last_end,
                    now,
                    overlap_minutes=self._overlap_minutes,
                    bootstrap_lookback_hours=self._bootstrap_lookback_hours,
                )
                logger.info(f"[PIPELINE] Window: {_iso(start_time)} -> {_iso(end_time)}")
                if last_end is not None:
                    logger.info(
                        f"[PIPELINE] Last fetch ended at {_iso(last_end)}, "
                        f"overlap: {self._overlap_minutes}min"
                    )
                else:
                    logger.info(
                        f"[PIPELINE] First run, looking back {self._bootstrap_lookback_hours}h"
                    )

                run_id = await create_fetch_log(session, start_time, end_time, now=now)
                await session.commit()

                discovered = await self._discover_all(start_time, end_time)
                qualified = await self._enrich_pending(session)
                qualified += await self._reenrich_stale(session)

                await complete_fetch_log(session, run_id, discovered, qualified)
                await session.commit()
            except Exception as e:
                logger.error(f"[PIPELINE] Failed: {e}")
                self._set_progress(f"Failed: {e}")
                if run_id is not None:
                    await session.rollback()
                    await fail_fetch_log(session, run_id, str(e))
                    await session.commit()
                raise

        self._set_progress(f"Done: {discovered} discovered, {qualified} qualified")
        logger.info(f"[PIPELINE] Complete: {discovered} discovered, {qualified} qualified")
        return RunResult(run_id=run_id, discovered=discovered, qualified=qualified)

    async def _discover_all(self, start_time: int, end_time: int) -> int:
        programs = self._discoverer.programs
        self._set_progress(
            f"Stage 1: Discovering mints from {', '.join(PROGRAM_LABELS[p] for p in programs)}..."
        )
        # Let every program finish and persist before failing the run.
        outcomes = await asyncio.gather(
            *(self._discover_and_save(p, start_time, end_time) for p in programs),
            return_exceptions=True,
        )
        for program, outcome in zip(programs, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"[PIPELINE] {PROGRAM_LABELS[program]} discovery failed: {outcome}")
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        total = sum(outcomes)
        logger.info(f"[PIPELINE] Stage 1 complete: {total} mints in window")
        return total

    async def _discover_and_save(self, program: TokenProgram, start_time: int, end_time: int) -> int:
        label = PROGRAM_LABELS[program]

        def on_progress(page: int, found: int) -> None:
            self._set_progress(f"Stage 1: {label} page {page}, {found} mints found...")

        mints: list[DiscoveredMint] = await self._discoverer.discover(
            program, start_time, end_time, on_progress
        )
        async with self._session_factory() as session:
            inserted = await insert_mints(session, mints)
            await session.commit()
        logger.info(f"[PIPELINE] {label}: {len(mints)} discovered, {inserted} new")
        return len(mints)

    async def _enrich_pending(self, session: AsyncSession) -> int:
        pending = await get_pending_mints(session)
        await session.commit()
        logger.info(f"[PIPELINE] Stage 2a: {len(pending)} pending mints to enrich")
        if not pending:
            return 0

        self._set_progress(f"Stage 2a: Enriching {len(pending)} new mints...")
        addresses = [m.address for m in pending]
        results = await self._enricher.enrich(
            addresses,
            lambda batch, total: self._set_progress(f"Stage 2a: Enriching batch {batch}/{total}..."),
        )

        qualified = 0
        gave_up = 0
        for address in addresses:
            data = results.get(address)
            if data is None:
                status = await increment_retry_count(session, address, self._max_retries_no_pool)
                if status is MintStatus.NO_POOL:
                    gave_up += 1
                continue
            await update_mint_enrichment(session, address, data, now=int(self._clock()))
            if data.status is MintStatus.QUALIFIED:
                qualified += 1
        await session.commit()

        logger.info(
            f"[PIPELINE] Stage 2a: {len(results)} resolved, {qualified} qualified, "
            f"{gave_up} marked no_pool"
        )
        return qualified

    async def _reenrich_stale(self, session: AsyncSession) -> int:
        stale = await get_mints_for_reenrichment(
            session, self._reenrich_stale_sec, now=int(self._clock())
        )
        await session.commit()
        logger.info(f"[PIPELINE] Stage 2b: {len(stale)} stale mints to re-enrich")
        if not stale:
            return 0

        self._set_progress(f"Stage 2b: Re-enriching {len(stale)} existing mints...")
        addresses = [m.address for m in stale]
        results = await self._enricher.enrich(
            addresses,
            lambda batch, total: self._set_progress(
                f"Stage 2b: Re-enriching batch {batch}/{total}..."
            ),
        )

        qualified = 0
        for address in addresses:
            data = results.get(address)
            if data is None:
                continue
            data = _keep_classified(data)
            await update_mint_enrichment(session, address, data, now=int(self._clock()))
            if data.status is MintStatus.QUALIFIED:
                qualified += 1
        await session.commit()
        return qualified


def _keep_classified(data: EnrichmentResult) -> EnrichmentResult:
    """A classified mint whose pool drained is below threshold, not no_pool."""
    if data.status is MintStatus.NO_POOL:
        return replace(data, status=MintStatus.BELOW_THRESHOLD)
    return data
