"""Typed business errors raised by the store service layer.

Routers do not translate these one by one; ``app.main`` registers a single
handler that renders ``{"detail", "code", ...extra}`` with the error's status.
"""

from typing import Any, Optional


class StoreError(Exception):
    """Base class for store business errors."""

    code = "STORE_ERROR"
    status_code = 400
    default_detail = "Store operation failed"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code, **self.extra}


class EmptyCart(StoreError):
    code = "EMPTY_CART"
    status_code = 400
    default_detail = "Cart is empty"


class ProductNotFound(StoreError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404
    default_detail = "Product not found"

    def __init__(self, product_id, detail: Optional[str] = None):
        self.product_id = product_id
        super().__init__(detail, product_id=str(product_id))


class ProductUnavailable(StoreError):
    code = "PRODUCT_UNAVAILABLE"
    status_code = 422
    default_detail = "Product is not available"

    def __init__(self, product_id, detail: Optional[str] = None):
        self.product_id = product_id
        super().__init__(detail, product_id=str(product_id))


class InsufficientStock(StoreError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409
    default_detail = "Insufficient stock"

    def __init__(
        self,
        product_id,
        requested: Optional[int] = None,
        available: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        if detail is None and available is not None:
            detail = f"Only {available} left in stock"
        super().__init__(
            detail,
            product_id=str(product_id),
            requested=requested,
            available=available,
        )


class InvalidQuantity(StoreError):
    code = "INVALID_QUANTITY"
    status_code = 422
    default_detail = "Invalid quantity"


class CartItemNotFound(StoreError):
    code = "CART_ITEM_NOT_FOUND"
    status_code = 404
    default_detail = "Cart item not found"


class OrderNotFound(StoreError):
    code = "ORDER_NOT_FOUND"
    status_code = 404
    default_detail = "Order not found"

    def __init__(self, order_ref: Any = None, detail: Optional[str] = None):
        self.order_ref = order_ref
        if detail is None and order_ref is not None:
            detail = f"Order {order_ref} not found"
        super().__init__(detail)


class InvalidTransition(StoreError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, from_status, to_status, detail: Optional[str] = None):
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        super().__init__(
            detail
            or f"Cannot change order status from {self.from_status} to {self.to_status}",
            **{"from": self.from_status, "to": self.to_status},
        )


class CannotCancelPaidOrder(StoreError):
    code = "CANNOT_CANCEL_PAID_ORDER"
    status_code = 409
    default_detail = "Paid orders cannot be cancelled"


class TrackingNotAllowed(StoreError):
    code = "TRACKING_NOT_ALLOWED"
    status_code = 409
    default_detail = "Tracking can only be updated for paid orders being processed or shipped"


class PaymentNotAllowed(StoreError):
    code = "PAYMENT_NOT_ALLOWED"
    status_code = 400
    default_detail = "Order cannot be paid"


class InvalidSignature(StoreError):
    code = "INVALID_SIGNATURE"
    status_code = 403
    default_detail = "Invalid signature"


class PaymentAmountMismatch(StoreError):
    code = "PAYMENT_AMOUNT_MISMATCH"
    status_code = 400
    default_detail = "Payment amount does not match order total"


class GatewayUnavailable(StoreError):
    code = "GATEWAY_UNAVAILABLE"
    status_code = 502
    default_detail = "Payment gateway is unavailable"
