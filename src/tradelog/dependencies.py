"""
FastAPI dependencies exposing the per-app services.

Services are created once by the app factory and stored on app.state.
"""

from fastapi import Request

from src.tradelog.config import Settings
from src.tradelog.images.proxy import ImageProxy
from src.tradelog.prices.service import PriceService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_price_service(request: Request) -> PriceService:
    return request.app.state.price_service


def get_image_proxy(request: Request) -> ImageProxy:
    return request.app.state.image_proxy
