"""DexScreener enrichment — best pair per token and qualification.

Addresses are queried in batches of 30. For every base token only the pair
with the highest USD liquidity is kept. A batch that fails is logged and its
addresses are simply missing from the result, same as tokens with no pair.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal

from loguru import logger

from src.models.mint import MintStatus
from src.parsers.dexscreener.client import MAX_BATCH, DexScreenerClient
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.exceptions import UpstreamError

BATCH_SIZE = MAX_BATCH
MAX_RPS = 5.0

EnrichmentProgress = Callable[[int, int], None]


@dataclass(frozen=True)
class EnrichmentResult:
    token_name: str | None
    token_symbol: str | None
    price_usd: float | None
    liquidity_usd: float | None
    market_cap_usd: float | None
    fdv_usd: float | None
    dex_url: str | None
    pair_address: str | None
    status: MintStatus


def classify(
    liquidity_usd: float | None,
    market_cap_usd: float | None,
    fdv_usd: float | None,
    *,
    min_liquidity_usd: float,
    min_market_cap_usd: float,
) -> MintStatus:
    """Qualified needs liquidity and (market cap or FDV) above the minimums."""
    if not liquidity_usd:
        return MintStatus.NO_POOL

    meets_liquidity = liquidity_usd >= min_liquidity_usd
    meets_valuation = (market_cap_usd is not None and market_cap_usd >= min_market_cap_usd) or (
        fdv_usd is not None and fdv_usd >= min_market_cap_usd
    )
    if meets_liquidity and meets_valuation:
        return MintStatus.QUALIFIED
    return MintStatus.BELOW_THRESHOLD


def select_best_pairs(
    pairs: Iterable[DexScreenerPair], chain_id: str
) -> dict[str, DexScreenerPair]:
    """Map base token address -> its most liquid pair on ``chain_id``.

    Ties keep the pair seen first.
    """
    best: dict[str, DexScreenerPair] = {}
    for pair in pairs:
        if pair.chainId != chain_id or pair.baseToken is None:
            continue
        addr = pair.baseToken.address
        current = best.get(addr)
        if current is None or (pair.liquidity_usd or 0) > (current.liquidity_usd or 0):
            best[addr] = pair
    return best


def _to_float(value: Decimal | str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def batched(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class EnrichmentClient:
    def __init__(
        self,
        dexscreener: DexScreenerClient,
        *,
        min_liquidity_usd: float,
        min_market_cap_usd: float,
        batch_size: int = BATCH_SIZE,
        max_rps: float = MAX_RPS,
    ) -> None:
        if not 1 <= batch_size <= MAX_BATCH:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH}, got {batch_size}")
        self._dexscreener = dexscreener
        self._min_liquidity_usd = min_liquidity_usd
        self._min_market_cap_usd = min_market_cap_usd
        self._batch_size = batch_size
        self._batch_delay = 1.0 / max_rps if max_rps > 0 else 0.0

    def to_result(self, pair: DexScreenerPair) -> EnrichmentResult:
        liquidity = _to_float(pair.liquidity_usd)
        market_cap = _to_float(pair.marketCap)
        fdv = _to_float(pair.fdv)
        base = pair.baseToken
        return EnrichmentResult(
            token_name=(base.name if base else None) or None,
            token_symbol=(base.symbol if base else None) or None,
            price_usd=_to_float(pair.priceUsd),
            liquidity_usd=liquidity,
            market_cap_usd=market_cap,
            fdv_usd=fdv,
            dex_url=pair.url or None,
            pair_address=pair.pairAddress or None,
            status=classify(
                liquidity,
                market_cap,
                fdv,
                min_liquidity_usd=self._min_liquidity_usd,
                min_market_cap_usd=self._min_market_cap_usd,
            ),
        )

    async def enrich(
        self,
        addresses: list[str],
        on_progress: EnrichmentProgress | None = None,
    ) -> dict[str, EnrichmentResult]:
        """Resolve addresses to enrichment results; unresolved ones are absent."""
        results: dict[str, EnrichmentResult] = {}
        if not addresses:
            return results

        batches = batched(addresses, self._batch_size)
        logger.info(
            f"[DEXSCREENER] Enriching {len(addresses)} mints in {len(batches)} batches"
        )

        for i, batch in enumerate(batches, start=1):
            if on_progress is not None:
                on_progress(i, len(batches))

            try:
                pairs = await self._dexscreener.get_tokens_batch(batch)
            except UpstreamError as e:
                logger.warning(f"[DEXSCREENER] Batch {i}/{len(batches)} failed: {e}")
            else:
                best = select_best_pairs(pairs, self._dexscreener.chain_id)
                for addr in batch:
                    pair = best.get(addr)
                    if pair is not None:
                        results[addr] = self.to_result(pair)

            if i < len(batches):
                await asyncio.sleep(self._batch_delay)

        logger.info(f"[DEXSCREENER] Done: enriched {len(results)}/{len(addresses)} mints")
        return results
