"""
CoinGecko API client.

Fetches spot prices for the dashboard's fixed set of assets in one batch call.
"""

import logging
from typing import Any

import httpx

from src.tradelog.config import settings

logger = logging.getLogger(__name__)

# CoinGecko API endpoints
COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"
SIMPLE_PRICE_ENDPOINT = f"{COINGECKO_API_BASE}/simple/price"

PRICE_IDS = ["bitcoin", "ethereum", "solana", "cardano", "ripple", "dogecoin"]
VS_CURRENCIES = ["eur", "usd"]

USER_AGENT = "TradingLogApp/1.0"


class PriceFeedError(Exception):
    """Raised when the upstream price feed cannot be used."""


class CoinGeckoClient:
    """Client for the CoinGecko simple price API."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the CoinGecko client.

        Args:
            api_key: Optional demo API key. Uses settings if not provided.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        self.api_key = api_key if api_key is not None else settings.COINGECKO_API_KEY
        self.timeout = timeout or settings.PRICE_TIMEOUT_SECONDS
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_prices(self) -> dict[str, Any]:
        """
        Fetch EUR/USD prices and 24h change for all tracked assets.

        Returns:
            Mapping of asset id to price object, as returned by CoinGecko.

        Raises:
            PriceFeedError: On network errors, non-2xx status or a malformed body.
        """
        client = await self._get_client()

        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        try:
            response = await client.get(
                SIMPLE_PRICE_ENDPOINT,
                params={
                    "ids": ",".join(PRICE_IDS),
                    "vs_currencies": ",".join(VS_CURRENCIES),
                    "include_24hr_change": "true",
                },
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise PriceFeedError(f"CoinGecko request failed: {e.__class__.__name__}") from e

        if not response.is_success:
            raise PriceFeedError(
                f"CoinGecko HTTP {response.status_code} {response.text[:120]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PriceFeedError("CoinGecko returned invalid JSON") from e

        if not isinstance(data, dict) or not data:
            raise PriceFeedError("CoinGecko returned an empty or malformed body")

        return data
