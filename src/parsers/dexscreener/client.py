from loguru import logger
from pydantic import ValidationError

from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.http_client import RateLimitedClient

BASE_URL = "https://api.dexscreener.com"
MAX_BATCH = 30


class DexScreenerClient:
    """Async REST client for DexScreener public API (no auth required)."""

    def __init__(
        self,
        http: RateLimitedClient,
        *,
        api_url: str = BASE_URL,
        chain_id: str = "solana",
    ) -> None:
        self._http = http
        self._api_url = api_url.rstrip("/")
        self.chain_id = chain_id

    async def get_tokens_batch(self, addresses: list[str]) -> list[DexScreenerPair]:
        """Get all pairs for up to 30 token addresses in one request."""
        if not addresses:
            return []
        if len(addresses) > MAX_BATCH:
            raise ValueError(f"At most {MAX_BATCH} addresses per request, got {len(addresses)}")
        url = f"{self._api_url}/tokens/v1/{self.chain_id}/{','.join(addresses)}"
        data = await self._http.get_json(url)
        if isinstance(data, dict):
            data = data.get("pairs") or []
        if not isinstance(data, list):
            return []

        pairs: list[DexScreenerPair] = []
        for raw in data:
            try:
                pairs.append(DexScreenerPair.model_validate(raw))
            except ValidationError as e:
                logger.debug(f"[DEXSCREENER] skipping malformed pair: {e.error_count()} errors")
        return pairs

    async def close(self) -> None:
        await self._http.close()
