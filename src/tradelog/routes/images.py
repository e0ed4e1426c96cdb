"""
API route for the image proxy.

Answers with image bytes or an empty body, never an error page.
"""

import logging

from fastapi import APIRouter, Depends, Query, Response

from src.tradelog.dependencies import get_image_proxy
from src.tradelog.images.proxy import ImageProxy, ImageRejected

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/img", tags=["images"])


@router.get("")
async def get_image(
    u: str | None = Query(default=None),
    proxy: ImageProxy = Depends(get_image_proxy),
) -> Response:
    """
    Proxy a remote image.

    Args:
        u: Target image URL on an allowlisted host.

    Returns:
        Image bytes (200), 400 for invalid or blocked URLs, 204 when unavailable.
    """
    try:
        result = await proxy.get_image(u)
    except ImageRejected as e:
        logger.debug(f"Rejected image request: {e}")
        return Response(status_code=400)
    except Exception as e:
        logger.error(f"Image proxy error: {e}")
        return Response(status_code=204)

    if result.status_code != 200:
        return Response(status_code=result.status_code)

    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={"Cache-Control": result.cache_control},
    )
