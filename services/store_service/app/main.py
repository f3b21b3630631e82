"""FastAPI application for the Store Service."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.store_service.errors import StoreError
from services.store_service.routers import (
    addresses_router,
    admin_orders_router,
    cart_router,
    orders_router,
    payments_router,
    shipping_router,
)
from slowapi.errors import RateLimitExceeded

logger = get_logger(__name__)


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Render typed business errors as ``{"detail", "code", ...}``."""
    if exc.status_code >= 500:
        logger.error("Store error %s: %s", exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the Store Service FastAPI app."""
    app = FastAPI(
        title="Sports Store Service",
        version="0.1.0",
        description="E-commerce service - cart, checkout, orders, payments, shipping.",
    )

    add_observability_middleware(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store"}

    # Customer routes (cart, checkout, orders, addresses, shipping)
    app.include_router(cart_router)
    app.include_router(orders_router)
    app.include_router(addresses_router)
    app.include_router(shipping_router)

    # Gateway webhooks
    app.include_router(payments_router)

    # Admin routes (order management, restock)
    app.include_router(admin_orders_router, prefix="/admin")

    return app


app = create_app()
