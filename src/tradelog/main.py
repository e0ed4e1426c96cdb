"""
FastAPI main application entry point.

Configures CORS, routers, the per-app cache services and the static client
fallback.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import httpx
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from src.tradelog.cache import Clock, ImageCache, PriceCache
from src.tradelog.config import Settings, settings
from src.tradelog.images.proxy import ImageProxy
from src.tradelog.prices.client import CoinGeckoClient
from src.tradelog.prices.service import PriceService
from src.tradelog.routes import images, news, prices

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting Trading Log API...")
    logger.info(f"News snapshot path: {app.state.settings.news_path}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.price_service.close()
    await app.state.image_proxy.close()
    logger.info("Shutdown complete")


def _resolve_client_file(dist_dir: Path, full_path: str) -> Path | None:
    """Return the bundle file for a path, or index.html for client routes."""
    root = dist_dir.resolve()
    if full_path:
        candidate = (root / full_path).resolve()
        if candidate.is_relative_to(root) and candidate.is_file():
            return candidate
    index = root / "index.html"
    return index if index.is_file() else None


def create_app(
    config: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock = time.time,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Settings to use. Defaults to the environment settings.
        transport: Optional httpx transport for all upstream calls.
        clock: Time source for the caches.

    Returns:
        Configured FastAPI app.
    """
    config = config or settings

    app = FastAPI(
        title="Trading Log API",
        description="Price, news and image proxy API for the trading log dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Caches are process-wide, owned by the app
    app.state.settings = config
    app.state.price_service = PriceService(
        client=CoinGeckoClient(
            api_key=config.COINGECKO_API_KEY,
            timeout=config.PRICE_TIMEOUT_SECONDS,
            transport=transport,
        ),
        cache=PriceCache(ttl_seconds=config.PRICE_TTL_SECONDS, clock=clock),
    )
    app.state.image_proxy = ImageProxy(
        cache=ImageCache(
            fresh_ttl=config.IMG_FRESH_TTL_SECONDS,
            stale_ttl=config.IMG_STALE_TTL_SECONDS,
            clock=clock,
        ),
        allowed_domains=config.img_allowed_domains_list,
        allowlist_mode=config.IMG_ALLOWLIST_MODE,
        min_bytes=config.IMG_MIN_BYTES,
        max_bytes=config.IMG_MAX_BYTES,
        timeout=config.IMG_TIMEOUT_SECONDS,
        transport=transport,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(news.router)
    app.include_router(prices.router)
    app.include_router(images.router)

    @app.get("/api/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "ok": True,
            "now": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "news_path": str(config.news_path),
        }

    # Static client, registered last so API routes win
    @app.get("/{full_path:path}", include_in_schema=False)
    async def client_fallback(full_path: str) -> Response:
        """Serve the client bundle, falling back to index.html for client routes."""
        if full_path == "api" or full_path.startswith("api/"):
            return Response(status_code=404)

        path = _resolve_client_file(Path(config.CLIENT_DIST_DIR), full_path)
        if path is None:
            return Response(status_code=404)
        return FileResponse(path)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.tradelog.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
