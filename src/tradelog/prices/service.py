"""
Price service combining the CoinGecko client with the single-slot cache.

Stale prices are preferred over an error: once anything has been fetched,
upstream failures are answered from the cache.
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel

from src.tradelog.cache import CachedPrices, PriceCache
from src.tradelog.prices.client import CoinGeckoClient

logger = logging.getLogger(__name__)


class PriceUnavailable(Exception):
    """Raised when upstream fails and nothing has ever been cached."""


class PricesResponse(BaseModel):
    """Response for the prices endpoint."""

    cached: bool
    degraded: bool | None = None
    at: str
    prices: dict


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _response(entry: CachedPrices, cached: bool, degraded: bool = False) -> PricesResponse:
    return PricesResponse(
        cached=cached,
        degraded=True if degraded else None,
        at=_iso(entry.cached_at),
        prices=entry.data,
    )


class PriceService:
    """Serves prices from cache, refreshing from CoinGecko when expired."""

    def __init__(self, client: CoinGeckoClient, cache: PriceCache) -> None:
        self.client = client
        self.cache = cache

    async def get_prices(self) -> PricesResponse:
        """
        Return current prices, preferring the cache.

        Raises:
            PriceUnavailable: Upstream failed and the cache was never populated.
        """
        fresh = self.cache.get_fresh()
        if fresh:
            return _response(fresh, cached=True)

        try:
            data = await self.client.fetch_prices()
        except Exception as e:
            stale = self.cache.get_any()
            if stale:
                logger.warning(f"Price feed failed, serving cached prices: {e}")
                return _response(stale, cached=True, degraded=True)
            logger.error(f"Price feed failed with empty cache: {e}")
            raise PriceUnavailable(str(e)) from e

        entry = self.cache.set(data)
        return _response(entry, cached=False)

    async def close(self) -> None:
        await self.client.close()
