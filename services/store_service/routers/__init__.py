"""Store service routers package."""

from services.store_service.routers.addresses import router as addresses_router
from services.store_service.routers.admin_orders import router as admin_orders_router
from services.store_service.routers.cart import router as cart_router
from services.store_service.routers.orders import router as orders_router
from services.store_service.routers.payments import router as payments_router
from services.store_service.routers.shipping import router as shipping_router

__all__ = [
    "addresses_router",
    "admin_orders_router",
    "cart_router",
    "orders_router",
    "payments_router",
    "shipping_router",
]
