"""Store Service models package."""

from services.store_service.models.catalog import Product
from services.store_service.models.commerce import (
    MAX_CART_ITEM_QUANTITY,
    Cart,
    CartItem,
    Order,
    OrderItem,
    OrderSequence,
    StoreAuditLog,
    UserAddress,
)
from services.store_service.models.enums import (
    AuditEntityType,
    CourierService,
    InventoryMovementType,
    OrderStatus,
    PaymentStatus,
    ProductStatus,
)
from services.store_service.models.inventory import InventoryMovement

__all__ = [
    "AuditEntityType",
    "Cart",
    "CartItem",
    "CourierService",
    "InventoryMovement",
    "InventoryMovementType",
    "MAX_CART_ITEM_QUANTITY",
    "Order",
    "OrderItem",
    "OrderSequence",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "ProductStatus",
    "StoreAuditLog",
    "UserAddress",
]
