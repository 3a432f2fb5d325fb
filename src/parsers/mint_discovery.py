"""Mint discovery — walk a token program's TOKEN_MINT history inside a window.

Pages arrive newest-first. Transactions newer than ``end_time`` are skipped,
the first one older than ``start_time`` ends the scan. Both bounds are
inclusive. Deduplication here is per call only; the store handles
cross-run duplicates.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from src.models.mint import TokenProgram
from src.parsers.helius.client import HeliusClient

PAGE_DELAY_SEC = 0.11

DiscoveryProgress = Callable[[int, int], None]


@dataclass(frozen=True)
class DiscoveredMint:
    address: str
    tx_signature: str
    minted_at: int
    discovered_at: int
    token_program: TokenProgram


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat()


class MintDiscoverer:
    def __init__(
        self,
        helius: HeliusClient,
        program_addresses: dict[TokenProgram, str],
        *,
        page_delay: float = PAGE_DELAY_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._helius = helius
        self._program_addresses = program_addresses
        self._page_delay = page_delay
        self._clock = clock

    @property
    def programs(self) -> list[TokenProgram]:
        return list(self._program_addresses)

    async def discover(
        self,
        program: TokenProgram,
        start_time: int,
        end_time: int,
        on_progress: DiscoveryProgress | None = None,
    ) -> list[DiscoveredMint]:
        """Return unique mints created by ``program`` within [start_time, end_time].

        Upstream errors propagate; nothing is returned for a failed program.
        """
        program_address = self._program_addresses[program]
        mints: list[DiscoveredMint] = []
        seen: set[str] = set()
        before = ""
        page = 0

        logger.info(
            f"[HELIUS] Discovering {program} mints from {_iso(start_time)} to {_iso(end_time)}"
        )

        while True:
            page += 1
            txs = await self._helius.get_mint_transactions(program_address, before=before)
            if not txs:
                logger.debug(f"[HELIUS] {program} page {page}: empty, stopping")
                break

            reached_start = False
            for tx in txs:
                if tx.timestamp > end_time:
                    continue
                if tx.timestamp < start_time:
                    reached_start = True
                    break

                address = tx.minted_address
                if address and address not in seen:
                    seen.add(address)
                    mints.append(
                        DiscoveredMint(
                            address=address,
                            tx_signature=tx.signature,
                            minted_at=tx.timestamp,
                            discovered_at=int(self._clock()),
                            token_program=program,
                        )
                    )

            if on_progress is not None:
                on_progress(page, len(mints))
            logger.debug(
                f"[HELIUS] {program} page {page}: {len(txs)} txs, {len(mints)} unique mints so far"
            )

            if reached_start:
                logger.debug(f"[HELIUS] {program} reached start of window")
                break

            before = txs[-1].signature
            await asyncio.sleep(self._page_delay)

        logger.info(f"[HELIUS] {program}: {len(mints)} unique mints over {page} pages")
        return mints
