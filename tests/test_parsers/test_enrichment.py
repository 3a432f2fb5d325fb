"""Tests for DexScreener enrichment: best pair, classification, batching."""

from unittest.mock import AsyncMock, call, patch

import httpx
import pytest
from pydantic import ValidationError

from config.settings import Settings
from src.models.mint import MintStatus
from src.parsers.dexscreener.client import DexScreenerClient
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.enrichment import EnrichmentClient, batched, classify, select_best_pairs
from src.parsers.exceptions import TransientUpstreamError
from src.parsers.http_client import RateLimitedClient


def pair(
    base: str,
    liquidity: float | None,
    *,
    chain: str = "solana",
    market_cap: float | None = None,
    fdv: float | None = None,
    pair_address: str = "",
    name: str = "Token",
    symbol: str = "TKN",
    price: str | None = "0.0001",
) -> DexScreenerPair:
    return DexScreenerPair.model_validate({
        "chainId": chain,
        "dexId": "raydium",
        "url": f"https://dexscreener.com/solana/{pair_address or base}",
        "pairAddress": pair_address or f"pool-{base}",
        "baseToken": {"address": base, "name": name, "symbol": symbol},
        "quoteToken": {"address": "So11111111111111111111111111111111111111112", "symbol": "SOL"},
        "priceUsd": price,
        "liquidity": {"usd": liquidity} if liquidity is not None else None,
        "marketCap": market_cap,
        "fdv": fdv,
    })


class FakeDexScreener:
    chain_id = "solana"

    def __init__(self, pairs: list[DexScreenerPair], fail_batches: set[int] | None = None) -> None:
        self.pairs = pairs
        self.fail_batches = fail_batches or set()
        self.batches: list[list[str]] = []

    async def get_tokens_batch(self, addresses: list[str]) -> list[DexScreenerPair]:
        self.batches.append(list(addresses))
        if len(self.batches) in self.fail_batches:
            raise TransientUpstreamError("HTTP 429 rate limited", status_code=429)
        wanted = set(addresses)
        return [p for p in self.pairs if p.baseToken and p.baseToken.address in wanted]


def _enricher(dex, batch_size: int = 30) -> EnrichmentClient:
    return EnrichmentClient(
        dex,
        min_liquidity_usd=5000,
        min_market_cap_usd=10000,
        batch_size=batch_size,
        max_rps=0,
    )


class TestClassify:
    def _classify(self, liquidity, market_cap=None, fdv=None) -> MintStatus:
        return classify(liquidity, market_cap, fdv, min_liquidity_usd=5000, min_market_cap_usd=10000)

    def test_zero_liquidity_is_no_pool(self):
        assert self._classify(0, 50000, 50000) is MintStatus.NO_POOL

    def test_missing_liquidity_is_no_pool(self):
        assert self._classify(None, 50000) is MintStatus.NO_POOL

    def test_qualified_on_liquidity_and_market_cap(self):
        assert self._classify(6000, 12000) is MintStatus.QUALIFIED

    def test_below_threshold_on_low_valuation(self):
        assert self._classify(6000, 3000, 3000) is MintStatus.BELOW_THRESHOLD

    def test_below_threshold_on_low_liquidity(self):
        assert self._classify(4999, 50000, 50000) is MintStatus.BELOW_THRESHOLD

    def test_fdv_counts_when_market_cap_missing(self):
        assert self._classify(5000, None, 10000) is MintStatus.QUALIFIED

    def test_no_valuation_at_all_is_below_threshold(self):
        assert self._classify(8000, None, None) is MintStatus.BELOW_THRESHOLD


class TestSelectBestPairs:
    def test_highest_liquidity_wins(self):
        best = select_best_pairs(
            [pair("m1", 100, pair_address="low"), pair("m1", 500, pair_address="high")],
            "solana",
        )
        assert best["m1"].pairAddress == "high"

    def test_tie_keeps_first_seen(self):
        best = select_best_pairs(
            [pair("m1", 500, pair_address="first"), pair("m1", 500, pair_address="second")],
            "solana",
        )
        assert best["m1"].pairAddress == "first"

    def test_other_chains_ignored(self):
        best = select_best_pairs(
            [pair("m1", 100_000, chain="ethereum"), pair("m2", 10)],
            "solana",
        )
        assert "m1" not in best
        assert "m2" in best

    def test_missing_liquidity_treated_as_zero(self):
        best = select_best_pairs(
            [pair("m1", None, pair_address="none"), pair("m1", 1, pair_address="one")],
            "solana",
        )
        assert best["m1"].pairAddress == "one"


def test_batched_splits_in_order():
    assert batched(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]


class TestEnrich:
    @pytest.mark.asyncio
    async def test_best_pair_fields_are_returned(self):
        dex = FakeDexScreener([
            pair("m1", 100, market_cap=50000, pair_address="small"),
            pair("m1", 500, market_cap=60000, pair_address="big", name="Best", symbol="BST"),
        ])
        results = await _enricher(dex).enrich(["m1"])
        result = results["m1"]
        assert result.pair_address == "big"
        assert result.liquidity_usd == 500.0
        assert result.market_cap_usd == 60000.0
        assert result.token_name == "Best"
        assert result.token_symbol == "BST"
        assert result.price_usd == pytest.approx(0.0001)
        assert result.status is MintStatus.BELOW_THRESHOLD

    @pytest.mark.asyncio
    async def test_unresolved_addresses_are_absent(self):
        dex = FakeDexScreener([pair("m1", 6000, market_cap=12000)])
        results = await _enricher(dex).enrich(["m1", "m2"])
        assert set(results) == {"m1"}
        assert results["m1"].status is MintStatus.QUALIFIED

    @pytest.mark.asyncio
    async def test_zero_liquidity_pair_is_resolved_as_no_pool(self):
        dex = FakeDexScreener([pair("m1", 0, market_cap=12000)])
        results = await _enricher(dex).enrich(["m1"])
        assert results["m1"].status is MintStatus.NO_POOL

    @pytest.mark.asyncio
    async def test_batches_and_progress(self):
        addresses = [f"m{i}" for i in range(7)]
        dex = FakeDexScreener([pair(a, 6000, market_cap=20000) for a in addresses])
        progress: list[tuple[int, int]] = []
        results = await _enricher(dex, batch_size=3).enrich(
            addresses, lambda b, t: progress.append((b, t))
        )
        assert dex.batches == [["m0", "m1", "m2"], ["m3", "m4", "m5"], ["m6"]]
        assert progress == [(1, 3), (2, 3), (3, 3)]
        assert len(results) == 7

    @pytest.mark.asyncio
    async def test_failed_batch_is_isolated(self):
        addresses = [f"m{i}" for i in range(6)]
        dex = FakeDexScreener([pair(a, 6000, market_cap=20000) for a in addresses], fail_batches={1})
        results = await _enricher(dex, batch_size=3).enrich(addresses)
        assert set(results) == {"m3", "m4", "m5"}
        assert len(dex.batches) == 2

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_requests(self):
        dex = FakeDexScreener([])
        assert await _enricher(dex).enrich([]) == {}
        assert dex.batches == []


class TestDexScreenerClient:
    @pytest.mark.asyncio
    async def test_batch_request_url_and_parsing(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{
                "chainId": "solana",
                "pairAddress": "pool1",
                "url": "https://dexscreener.com/solana/pool1",
                "baseToken": {"address": "m1", "name": "One", "symbol": "ONE"},
                "priceUsd": "0.5",
                "liquidity": {"usd": 7000.5},
                "marketCap": 15000,
                "fdv": 20000,
                "volume": {"h24": 1},
            }])

        http = RateLimitedClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        client = DexScreenerClient(http, api_url="https://dex.test")
        pairs = await client.get_tokens_batch(["m1", "m2"])
        await client.close()

        assert seen[0].url.path == "/tokens/v1/solana/m1,m2"
        assert len(pairs) == 1
        assert pairs[0].liquidity_usd is not None
        assert float(pairs[0].liquidity_usd) == 7000.5

    @pytest.mark.asyncio
    async def test_pairs_wrapper_is_accepted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"pairs": [{"chainId": "solana", "baseToken": {"address": "m1"}}]})

        http = RateLimitedClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        client = DexScreenerClient(http, api_url="https://dex.test")
        pairs = await client.get_tokens_batch(["m1"])
        await client.close()
        assert [p.baseToken.address for p in pairs] == ["m1"]

    @pytest.mark.asyncio
    async def test_null_pairs_wrapper_is_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"pairs": None})

        http = RateLimitedClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        client = DexScreenerClient(http, api_url="https://dex.test")
        assert await client.get_tokens_batch(["m1"]) == []
        await client.close()


class TestBatchPacing:
    @pytest.mark.asyncio
    async def test_sleeps_between_batches_not_after_last(self):
        addresses = [f"m{i}" for i in range(7)]
        dex = FakeDexScreener([pair(a, 6000, market_cap=20000) for a in addresses])
        enricher = EnrichmentClient(
            dex, min_liquidity_usd=5000, min_market_cap_usd=10000, batch_size=3, max_rps=5.0
        )
        with patch("src.parsers.enrichment.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await enricher.enrich(addresses)
        assert sleep.await_args_list == [call(0.2), call(0.2)]

    @pytest.mark.asyncio
    async def test_single_batch_never_sleeps(self):
        dex = FakeDexScreener([pair("m1", 6000, market_cap=20000)])
        enricher = EnrichmentClient(dex, min_liquidity_usd=5000, min_market_cap_usd=10000, max_rps=5.0)
        with patch("src.parsers.enrichment.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await enricher.enrich(["m1"])
        sleep.assert_not_awaited()


class TestBatchSizeLimit:
    def test_enricher_rejects_batches_over_api_limit(self):
        with pytest.raises(ValueError):
            _enricher(FakeDexScreener([]), batch_size=50)

    def test_enricher_rejects_empty_batches(self):
        with pytest.raises(ValueError):
            _enricher(FakeDexScreener([]), batch_size=0)

    @pytest.mark.asyncio
    async def test_every_address_is_queried(self):
        addresses = [f"m{i}" for i in range(50)]
        dex = FakeDexScreener([pair(a, 6000, market_cap=20000) for a in addresses])
        results = await _enricher(dex).enrich(addresses)
        assert [len(b) for b in dex.batches] == [30, 20]
        assert set(results) == set(addresses)

    @pytest.mark.asyncio
    async def test_client_refuses_oversized_batch(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        http = RateLimitedClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        client = DexScreenerClient(http, api_url="https://dex.test")
        with pytest.raises(ValueError):
            await client.get_tokens_batch([f"m{i}" for i in range(31)])
        await client.close()
        assert seen == []

    def test_settings_reject_batch_size_over_api_limit(self):
        with pytest.raises(ValidationError):
            Settings(dexscreener_batch_size=50)
        assert Settings(dexscreener_batch_size=30).dexscreener_batch_size == 30
