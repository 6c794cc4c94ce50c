"""FastAPI application for the Checkout Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.checkout_service.routers import checkout_router, locations_router


def create_app() -> FastAPI:
    """Create and configure the Checkout Service FastAPI app."""
    app = FastAPI(
        title="Checkout Service",
        version="0.1.0",
        description="Checkout orchestration - addresses, shipping fees, coupons, order submission.",
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "checkout"}

    # Lookups first so /checkout/locations/... never hits a session route
    app.include_router(locations_router, prefix="/checkout")
    app.include_router(checkout_router, prefix="/checkout")

    return app


app = create_app()
