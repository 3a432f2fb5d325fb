"""Helius API client — program transaction history for mint discovery."""

from loguru import logger
from pydantic import ValidationError

from src.parsers.exceptions import PermanentUpstreamError
from src.parsers.helius.models import HeliusTransaction
from src.parsers.http_client import RateLimitedClient

PAGE_SIZE = 100


class HeliusClient:
    """Async client for the Helius Enhanced Transactions API."""

    def __init__(
        self,
        api_key: str,
        http: RateLimitedClient,
        *,
        api_url: str = "https://api-mainnet.helius-rpc.com/v0",
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._page_size = page_size
        self._http = http

    async def close(self) -> None:
        await self._http.close()

    async def get_mint_transactions(
        self, program_address: str, *, before: str = ""
    ) -> list[HeliusTransaction]:
        """Fetch one page of TOKEN_MINT transactions for a program, newest first."""
        url = f"{self._api_url}/addresses/{program_address}/transactions"
        params = {
            "api-key": self._api_key,
            "type": "TOKEN_MINT",
            "limit": self._page_size,
        }
        if before:
            params["before"] = before

        data = await self._http.get_json(url, params=params)
        if not isinstance(data, list):
            raise PermanentUpstreamError(
                f"Expected a list of transactions, got {type(data).__name__}", url=url
            )

        txs: list[HeliusTransaction] = []
        for raw in data:
            try:
                txs.append(HeliusTransaction.model_validate(raw))
            except ValidationError as e:
                logger.debug(f"[HELIUS] skipping malformed tx: {e.error_count()} errors")

        # An unparseable page must not read as the end of history.
        if data and not txs:
            raise PermanentUpstreamError(
                f"None of {len(data)} transactions could be parsed", url=url
            )
        if len(txs) < len(data):
            logger.warning(
                f"[HELIUS] {len(data) - len(txs)}/{len(data)} malformed transactions skipped"
            )
        return txs
