"""
Image proxy for remote article thumbnails.

Fetches images from an allowlist of news hosts so the browser never hotlinks
them directly. Results are cached in two tiers: fresh entries are served
without contacting upstream, stale entries only when upstream fails.
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from src.tradelog.cache import ImageCache

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124 Safari/537.36"
)
IMAGE_ACCEPT = "image/avif,image/webp,image/*,*/*;q=0.8"

FRESH_CACHE_CONTROL = "public, max-age=300"
STALE_CACHE_CONTROL = "public, max-age=60"

MAX_REDIRECTS = 3


class ImageRejected(Exception):
    """Raised for a missing, malformed or non-allowlisted image URL."""


@dataclass
class ImageResult:
    """Outcome of an image proxy request."""

    status_code: int
    content: bytes = b""
    content_type: str | None = None
    cache_control: str | None = None


def upgrade_scheme(raw: str) -> str:
    """Rewrite an http:// URL to https://."""
    if raw[:5].lower() == "http:":
        return "https:" + raw[5:]
    return raw


def host_allowed(host: str, allowed_domains: list[str], mode: str = "subdomain") -> bool:
    """
    Check a hostname against the allowlist.

    In "exact" mode the host must equal an entry. In "subdomain" mode it may
    also be any subdomain of an entry ("i0.wp.com" for "wp.com"), but never a
    look-alike such as "evilwp.com".
    """
    host = host.lower().rstrip(".")
    if not host:
        return False
    for domain in allowed_domains:
        if host == domain:
            return True
        if mode == "subdomain" and host.endswith(f".{domain}"):
            return True
    return False


class ImageProxy:
    """Fetches allowlisted images with retry and fresh/stale caching."""

    def __init__(
        self,
        cache: ImageCache,
        allowed_domains: list[str],
        allowlist_mode: str = "subdomain",
        min_bytes: int = 128,
        max_bytes: int = 5 * 1024 * 1024,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the image proxy.

        Args:
            cache: Image cache shared across requests.
            allowed_domains: Permitted base domains.
            allowlist_mode: "subdomain" or "exact".
            min_bytes: Smallest body accepted as a real image.
            max_bytes: Largest body read before the fetch is abandoned.
            timeout: Overall deadline in seconds for both attempts.
            transport: Optional httpx transport, mainly for tests.
        """
        self.cache = cache
        self.allowed_domains = [d.lower() for d in allowed_domains]
        self.allowlist_mode = allowlist_mode
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def is_allowed(self, url: httpx.URL) -> bool:
        """Return True if url is https on the default port and its host is allowlisted."""
        if url.scheme != "https" or url.port not in (None, 443):
            return False
        return host_allowed(url.host, self.allowed_domains, self.allowlist_mode)

    def validate(self, raw: str | None) -> tuple[str, httpx.URL]:
        """
        Turn the raw query parameter into a checked target URL.

        Returns:
            The scheme-upgraded URL string (the cache key) and its parsed form.

        Raises:
            ImageRejected: If the URL is missing, malformed or not allowlisted.
        """
        if not isinstance(raw, str) or not raw.strip():
            raise ImageRejected("missing url")

        target = upgrade_scheme(raw.strip())
        try:
            url = httpx.URL(target)
        except (httpx.InvalidURL, ValueError) as e:
            raise ImageRejected(f"invalid url: {e}") from e

        if url.scheme != "https" or not url.host:
            raise ImageRejected("invalid url")

        if not self.is_allowed(url):
            logger.warning(f"Blocked image host: {url.host}")
            raise ImageRejected("blocked host")

        return target, url

    async def _read_body(self, response: httpx.Response) -> bytes | None:
        """Read the streamed body, giving up once it exceeds max_bytes."""
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_bytes:
            return None

        chunks: list[bytes] = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > self.max_bytes:
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    async def _accept(self, response: httpx.Response) -> tuple[bytes, str] | None:
        if not response.is_success:
            return None
        content_type = response.headers.get("content-type", "")
        if not content_type.lower().startswith("image/"):
            return None
        content = await self._read_body(response)
        if content is None or len(content) < self.min_bytes:
            return None
        return content, content_type

    async def _attempt(self, url: httpx.URL, headers: dict[str, str]) -> tuple[bytes, str] | None:
        """Fetch once, following allowlisted redirects only."""
        client = await self._get_client()
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            try:
                async with client.stream("GET", current, headers=headers) as response:
                    if not response.is_redirect:
                        return await self._accept(response)
                    location = response.headers.get("location", "")
            except httpx.HTTPError as e:
                logger.debug(f"Image fetch failed for {current.host}: {e.__class__.__name__}")
                return None

            next_url = httpx.URL(upgrade_scheme(str(current.join(location))))
            if not self.is_allowed(next_url):
                logger.warning(f"Blocked image redirect to {next_url.host}")
                return None
            current = next_url

        logger.debug(f"Too many redirects for {url.host}")
        return None

    async def _fetch_with_retry(self, url: httpx.URL) -> tuple[bytes, str] | None:
        origin = f"https://{url.netloc.decode('ascii')}"
        headers = {
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": IMAGE_ACCEPT,
            "Referer": origin,
        }
        result = await self._attempt(url, headers)
        if result is None:
            headers.pop("Referer")
            result = await self._attempt(url, headers)
        return result

    async def fetch(self, url: httpx.URL) -> tuple[bytes, str] | None:
        """
        Fetch an image, trying with and then without a Referer.

        Some hosts require a same-origin Referer, others reject any. Both
        attempts, redirects included, share one deadline of `timeout` seconds.
        """
        try:
            return await asyncio.wait_for(self._fetch_with_retry(url), self.timeout)
        except asyncio.TimeoutError:
            logger.info(f"Image fetch from {url.host} timed out after {self.timeout}s")
            return None

    async def get_image(self, raw: str | None) -> ImageResult:
        """
        Resolve an image request.

        Raises:
            ImageRejected: For invalid or blocked URLs. Every other failure is
                answered from the stale cache or with an empty 204 result.
        """
        key, url = self.validate(raw)

        hit = self.cache.get_fresh(key)
        if hit:
            return ImageResult(200, hit.content, hit.content_type, FRESH_CACHE_CONTROL)

        try:
            fetched = await self.fetch(url)
        except Exception as e:
            logger.error(f"Unexpected error fetching image from {url.host}: {e}")
            fetched = None

        if fetched:
            content, content_type = fetched
            self.cache.set(key, content, content_type)
            return ImageResult(200, content, content_type, FRESH_CACHE_CONTROL)

        stale = self.cache.get_stale(key)
        if stale:
            logger.info(f"Serving stale image for {url.host}")
            return ImageResult(200, stale.content, stale.content_type, STALE_CACHE_CONTROL)

        return ImageResult(204)
