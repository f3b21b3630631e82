"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    product = ProductFactory.create(stock=3)
    db_session.add(product)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_sku() -> str:
    return f"SKU-{uuid.uuid4().hex[:8].upper()}"


def shipping_address(**overrides) -> dict:
    address = {
        "name": "Budi Santoso",
        "phone": "081234567890",
        "address": "Jl. Sudirman No. 1",
        "city": "Pekanbaru",
        "state": "Riau",
        "postal_code": "28127",
    }
    address.update(overrides)
    return address


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ProductFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Product, ProductStatus

        defaults = {
            "id": _uuid(),
            "name": "Jersey Futsal",
            "sku": _unique_sku(),
            "description": "Breathable futsal jersey",
            "price": Decimal("50000.00"),
            "stock": 10,
            "weight": Decimal("0.30"),
            "status": ProductStatus.ACTIVE,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Product(**defaults)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


class CartFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Cart

        defaults = {
            "id": _uuid(),
            "user_id": f"customer-{uuid.uuid4().hex[:8]}",
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Cart(**defaults)


class CartItemFactory:
    @staticmethod
    def create(cart_id=None, product=None, **overrides):
        from services.store_service.models import CartItem

        defaults = {
            "id": _uuid(),
            "cart_id": cart_id or _uuid(),
            "product_id": product.id if product is not None else _uuid(),
            "quantity": 1,
            "price": product.price if product is not None else Decimal("50000.00"),
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return CartItem(**defaults)


class UserAddressFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import UserAddress

        defaults = {
            "id": _uuid(),
            "user_id": f"customer-{uuid.uuid4().hex[:8]}",
            "is_default": False,
            "created_at": _now(),
            "updated_at": _now(),
            **shipping_address(),
        }
        defaults.update(overrides)
        return UserAddress(**defaults)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class OrderItemFactory:
    @staticmethod
    def create(product=None, **overrides):
        from services.store_service.models import OrderItem

        quantity = overrides.pop("quantity", 1)
        price = overrides.pop(
            "price", product.price if product is not None else Decimal("50000.00")
        )
        defaults = {
            "id": _uuid(),
            "product_id": product.id if product is not None else None,
            "product_name": product.name if product is not None else "Jersey Futsal",
            "product_sku": product.sku if product is not None else _unique_sku(),
            "quantity": quantity,
            "price": price,
            "line_total": price * quantity,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return OrderItem(**defaults)


class OrderFactory:
    @staticmethod
    def create(items=None, **overrides):
        """Build an order; totals are derived from ``items`` unless overridden."""
        from services.store_service.models import (
            CourierService,
            Order,
            OrderStatus,
            PaymentStatus,
        )

        items = items or []
        subtotal = sum((item.line_total for item in items), Decimal("0.00"))
        shipping_cost = overrides.pop("shipping_cost", Decimal("15000.00"))
        defaults = {
            "id": _uuid(),
            "order_number": f"ORD-TEST-{uuid.uuid4().hex[:8].upper()}",
            "user_id": f"customer-{uuid.uuid4().hex[:8]}",
            "status": OrderStatus.PENDING,
            "payment_status": PaymentStatus.PENDING,
            "subtotal": subtotal,
            "shipping_cost": shipping_cost,
            "total_amount": subtotal + shipping_cost,
            "courier_service": CourierService.REGULAR,
            "shipping_address": shipping_address(),
            "shipping_estimate_fallback": False,
            "tracking_history": [],
            "items": items,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Order(**defaults)
