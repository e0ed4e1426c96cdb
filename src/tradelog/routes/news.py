"""
API routes for the news feed.

Serves the snapshot written by the ingestion worker.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from src.tradelog.config import Settings
from src.tradelog.dependencies import get_app_settings
from src.tradelog.news.schemas import NewsListResponse
from src.tradelog.news.snapshot import read_news

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/news", tags=["news"])

NO_STORE = {"Cache-Control": "no-store"}


@router.get("", response_model=NewsListResponse)
async def get_news(config: Settings = Depends(get_app_settings)) -> JSONResponse:
    """
    Get the latest news snapshot.

    Always answers 200. A missing or corrupt snapshot yields an empty list.

    Returns:
        Normalized news items, newest first.
    """
    try:
        news = await run_in_threadpool(read_news, config.news_path)
        body = news.model_dump(exclude={"error", "message"})
    except Exception as e:
        logger.error(f"Failed to serve news: {e}")
        body = NewsListResponse(error="server_error", message=str(e)).model_dump()

    return JSONResponse(content=body, headers=NO_STORE)
