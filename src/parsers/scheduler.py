"""Periodic trigger for the fetch pipeline."""

import asyncio

from loguru import logger

from src.parsers.pipeline import ALREADY_RUNNING, PipelineOrchestrator


async def run_scheduler(
    orchestrator: PipelineOrchestrator,
    interval_sec: float,
    *,
    run_on_start: bool = False,
) -> None:
    """Call ``start_run()`` every ``interval_sec``. Overlapping ticks are skipped."""
    if interval_sec <= 0:
        logger.info("[SCHEDULER] No fetch interval configured, auto-fetch disabled")
        return

    logger.info(f"[SCHEDULER] Auto-fetch every {interval_sec / 3600:.2f}h")
    if run_on_start:
        _tick(orchestrator)

    while True:
        await asyncio.sleep(interval_sec)
        _tick(orchestrator)


def _tick(orchestrator: PipelineOrchestrator) -> None:
    result = orchestrator.start_run()
    if result == ALREADY_RUNNING:
        logger.info(
            f"[SCHEDULER] Skipping tick, run in progress: {orchestrator.status().progress}"
        )
    else:
        logger.info("[SCHEDULER] Scheduled fetch triggered")
