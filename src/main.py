"""Entry point for the mint monitor service."""

import asyncio
import signal

from loguru import logger

from config.settings import settings
from src.db.database import async_session_factory, engine, init_db
from src.models.mint import TokenProgram
from src.parsers.dexscreener.client import DexScreenerClient
from src.parsers.enrichment import EnrichmentClient
from src.parsers.helius.client import HeliusClient
from src.parsers.http_client import RateLimitedClient
from src.parsers.mint_discovery import MintDiscoverer
from src.parsers.pipeline import PipelineOrchestrator
from src.parsers.rate_limiter import RateLimiter
from src.parsers.scheduler import run_scheduler
from src.utils.logger import setup_logger


def build_orchestrator(helius: HeliusClient, dexscreener: DexScreenerClient) -> PipelineOrchestrator:
    discoverer = MintDiscoverer(
        helius,
        {
            TokenProgram.SPL: settings.spl_token_program,
            TokenProgram.TOKEN_2022: settings.token2022_program,
        },
        page_delay=settings.helius_page_delay_sec,
    )
    enricher = EnrichmentClient(
        dexscreener,
        min_liquidity_usd=settings.min_liquidity_usd,
        min_market_cap_usd=settings.min_market_cap_usd,
        batch_size=settings.dexscreener_batch_size,
        max_rps=settings.dexscreener_max_rps,
    )
    return PipelineOrchestrator(
        async_session_factory,
        discoverer,
        enricher,
        overlap_minutes=settings.overlap_minutes,
        bootstrap_lookback_hours=settings.bootstrap_lookback_hours,
        max_retries_no_pool=settings.max_retries_no_pool,
        reenrich_stale_hours=settings.reenrich_stale_hours,
    )


def build_http_client(tag: str, max_rps: float) -> RateLimitedClient:
    """One client per upstream; its limiter gates every attempt, retries included."""
    return RateLimitedClient(
        max_retries=settings.http_max_retries,
        backoff_base=settings.http_backoff_base_sec,
        max_retry_after=settings.http_max_retry_after_sec,
        timeout=settings.http_timeout_sec,
        rate_limiter=RateLimiter(max_rps),
        tag=tag,
    )


async def main() -> None:
    setup_logger(level="INFO")
    logger.info("Starting mint monitor...")

    await init_db()

    if not settings.helius_api_key:
        logger.warning("No HELIUS_API_KEY set, discovery runs will fail until it is configured")
    logger.info(
        f"Thresholds: minMcap=${settings.min_market_cap_usd:,.0f}, "
        f"minLiquidity=${settings.min_liquidity_usd:,.0f}"
    )

    helius = HeliusClient(
        settings.helius_api_key,
        build_http_client("HELIUS", settings.helius_max_rps),
        api_url=settings.helius_api_url,
        page_size=settings.helius_page_size,
    )
    dexscreener = DexScreenerClient(
        build_http_client("DEXSCREENER", settings.dexscreener_max_rps),
        api_url=settings.dexscreener_api_url,
        chain_id=settings.dexscreener_chain_id,
    )
    orchestrator = build_orchestrator(helius, dexscreener)

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    tasks = [
        asyncio.create_task(
            run_scheduler(
                orchestrator,
                settings.fetch_interval_hours * 3600,
                run_on_start=settings.fetch_on_start,
            ),
            name="scheduler",
        )
    ]
    if settings.dashboard_enabled:
        from src.api.server import run_dashboard_server

        tasks.append(
            asyncio.create_task(
                run_dashboard_server(orchestrator, async_session_factory), name="dashboard"
            )
        )

    await shutdown_event.wait()

    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # No mid-run abort: an active run is cut off with the process.
    if orchestrator.is_running:
        logger.warning(f"Exiting during a run: {orchestrator.status().progress}")

    await helius.close()
    await dexscreener.close()
    await engine.dispose()
    logger.info("Shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
