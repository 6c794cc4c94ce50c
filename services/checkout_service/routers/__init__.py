"""Checkout service routers package."""

from services.checkout_service.routers.checkout import router as checkout_router
from services.checkout_service.routers.locations import router as locations_router

__all__ = [
    "checkout_router",
    "locations_router",
]
