"""
API routes for spot prices.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.tradelog.dependencies import get_price_service
from src.tradelog.prices.service import PriceService, PricesResponse, PriceUnavailable

router = APIRouter(prefix="/api/prices", tags=["prices"])

NO_STORE = {"Cache-Control": "no-store"}


@router.get("", response_model=PricesResponse)
async def get_prices(service: PriceService = Depends(get_price_service)) -> JSONResponse:
    """
    Get current prices for the tracked assets.

    Returns:
        Cached or freshly fetched prices; 503 only if nothing was ever fetched.
    """
    try:
        prices = await service.get_prices()
    except PriceUnavailable as e:
        return JSONResponse(
            status_code=503,
            content={"error": "price_feed_unavailable", "message": str(e)},
            headers=NO_STORE,
        )

    return JSONResponse(content=prices.model_dump(exclude_none=True), headers=NO_STORE)
