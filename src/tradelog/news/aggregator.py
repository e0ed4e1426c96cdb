"""
News aggregator for fetching, tagging and ordering crypto news articles.

Uses NewsAPI as the built-in provider. Additional providers implement
NewsProvider and are passed to NewsAggregator.
"""

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Protocol

import httpx

from src.tradelog.config import Settings, settings as default_settings
from src.tradelog.news.schemas import NewsArticleIn, NewsItem, NewsSnapshot

logger = logging.getLogger(__name__)

NEWS_API_BASE = "https://newsapi.org/v2"
EVERYTHING_ENDPOINT = f"{NEWS_API_BASE}/everything"

USER_AGENT = "TradingLogApp/1.0"

QUERY_TERMS = [
    "crypto", "cryptocurrency", "bitcoin", "ethereum", "solana",
    "blockchain", "defi", "nft",
]
NEWS_QUERY = " OR ".join(QUERY_TERMS)

# Ordered: a tagged article lists its coins in this order.
COIN_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("BTC", re.compile(r"\b(?:btc|bitcoin)\b", re.IGNORECASE)),
    ("ETH", re.compile(r"\b(?:eth|ethereum)\b", re.IGNORECASE)),
    ("SOL", re.compile(r"\b(?:sol|solana)\b", re.IGNORECASE)),
    ("ADA", re.compile(r"\b(?:ada|cardano)\b", re.IGNORECASE)),
    ("XRP", re.compile(r"\b(?:xrp|ripple)\b", re.IGNORECASE)),
    ("DOGE", re.compile(r"\b(?:doge|dogecoin)\b", re.IGNORECASE)),
]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class NewsProviderError(Exception):
    """Raised when a news provider returns an unusable response."""


class NewsProvider(Protocol):
    """A source of normalized news items."""

    name: str

    async def fetch(self) -> list[NewsItem]: ...


def tag_coins(text: str) -> list[str]:
    """Return the coin symbols mentioned in text, in table order."""
    if not text:
        return []
    return [symbol for symbol, pattern in COIN_PATTERNS if pattern.search(text)]


def generate_item_id(key: str) -> str:
    """Stable 24-char id derived from an article URL or title."""
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:24]


def dedupe(items: list[NewsItem]) -> list[NewsItem]:
    """
    Drop duplicate articles, keeping the first occurrence.

    Identity is the URL, or the title when the URL is empty.
    """
    seen: set[str] = set()
    unique: list[NewsItem] = []
    for item in items:
        key = item.url or item.title
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        if digest in seen:
            continue
        seen.add(digest)
        unique.append(item)
    return unique


def parse_published(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp; missing or invalid values map to the epoch."""
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_by_published(items: list[NewsItem]) -> list[NewsItem]:
    """Sort newest first. Ties keep their fetch order."""
    return sorted(items, key=lambda item: parse_published(item.published_at), reverse=True)


def build_snapshot(items: list[NewsItem], now: datetime | None = None) -> NewsSnapshot:
    """Wrap items with a UTC generation timestamp and their count."""
    generated_at = (now or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    return NewsSnapshot(generated_at=generated_at, count=len(items), items=list(items))


def normalize_article(article: NewsArticleIn) -> NewsItem:
    """Convert a NewsAPI article into a snapshot record."""
    title = article.title or ""
    description = article.description or ""
    url = article.url or ""

    source_name = ""
    if isinstance(article.source, dict):
        source_name = article.source.get("name") or ""
    elif isinstance(article.source, str):
        source_name = article.source

    text = " ".join([title, description, article.content or ""])

    return NewsItem(
        id=generate_item_id(url or title),
        title=title,
        url=url,
        source="newsapi",
        source_name=source_name,
        image_url=article.urlToImage or None,
        coins=tag_coins(text),
        published_at=article.publishedAt or None,
        excerpt=description,
    )


class NewsApiProvider:
    """NewsAPI.org provider using the /everything endpoint."""

    name = "newsapi"

    def __init__(
        self,
        api_key: str | None = None,
        page_size: int | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: NewsAPI API key. Uses settings if not provided.
            page_size: Articles per request, capped at 100.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        self.api_key = api_key if api_key is not None else default_settings.NEWSAPI_KEY
        self.page_size = min(page_size or default_settings.NEWS_PAGE_SIZE, 100)
        self.timeout = timeout or default_settings.NEWS_TIMEOUT_SECONDS
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

    async def fetch(self) -> list[NewsItem]:
        """
        Fetch the latest crypto articles.

        Returns:
            Normalized news items, in provider order.

        Raises:
            NewsProviderError: If NewsAPI answers with an error.
        """
        if not self.api_key:
            logger.warning("NEWSAPI_KEY not set; skipping NewsAPI provider")
            return []

        client = await self._get_client()
        response = await client.get(
            EVERYTHING_ENDPOINT,
            params={
                "q": NEWS_QUERY,
                "language": "en",
                "sortBy": "publishedAt",
                "pageSize": self.page_size,
            },
            headers={"X-Api-Key": self.api_key, "User-Agent": USER_AGENT},
        )

        if response.status_code == 401:
            logger.error("Invalid NEWSAPI_KEY")
        elif response.status_code == 429:
            logger.warning("NewsAPI rate limit reached")
        if not response.is_success:
            raise NewsProviderError(
                f"NewsAPI HTTP {response.status_code}: {response.text[:200]}"
            )

        data = response.json()
        if not isinstance(data, dict) or data.get("status") != "ok":
            message = data.get("message", "Unknown error") if isinstance(data, dict) else "Malformed body"
            raise NewsProviderError(f"NewsAPI error: {message}")

        items = []
        for raw in data.get("articles") or []:
            try:
                article = NewsArticleIn.model_validate(raw)
            except Exception as e:
                logger.warning(f"Failed to parse article: {e}")
                continue

            # Deleted content
            if article.title and "[Removed]" in article.title:
                continue

            items.append(normalize_article(article))

        logger.debug(f"NewsAPI returned {len(items)} articles")
        return items


class NewsAggregator:
    """Aggregator for fetching news articles from multiple providers."""

    def __init__(self, providers: list[NewsProvider] | None = None):
        self.providers: list[NewsProvider] = (
            providers if providers is not None else [NewsApiProvider()]
        )

    async def close(self) -> None:
        """Close provider clients that hold one."""
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()

    async def collect(self) -> list[NewsItem]:
        """
        Fetch from every provider, then dedupe and sort.

        A failing provider is logged and contributes nothing.
        """
        collected: list[NewsItem] = []
        for provider in self.providers:
            try:
                items = await provider.fetch()
            except Exception as e:
                logger.warning(f"{provider.name} provider failed: {e}")
                continue
            collected.extend(items)

        return sort_by_published(dedupe(collected))


def create_aggregator(
    config: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> NewsAggregator:
    """Build an aggregator with the configured providers."""
    config = config or default_settings
    return NewsAggregator(
        providers=[
            NewsApiProvider(
                api_key=config.NEWSAPI_KEY,
                page_size=config.NEWS_PAGE_SIZE,
                timeout=config.NEWS_TIMEOUT_SECONDS,
                transport=transport,
            )
        ]
    )
