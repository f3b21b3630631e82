"""Pydantic schemas for store service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from services.store_service.models import (
    MAX_CART_ITEM_QUANTITY,
    CourierService,
    OrderStatus,
    PaymentStatus,
)

# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(1, ge=1, le=MAX_CART_ITEM_QUANTITY)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1, le=MAX_CART_ITEM_QUANTITY)


class CartProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    sku: str
    price: Decimal
    stock: int
    weight: Optional[Decimal] = None


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    price: Decimal  # Snapshot at add/update time
    line_total: Decimal
    product: Optional[CartProductSummary] = None


class CartResponse(BaseModel):
    id: uuid.UUID
    items: list[CartItemResponse] = []
    item_count: int = 0
    subtotal: Decimal = Decimal("0")


# ============================================================================
# ADDRESS SCHEMAS
# ============================================================================


class ShippingAddress(BaseModel):
    name: str = Field(..., max_length=255)
    phone: str = Field(..., max_length=50)
    address: str = Field(..., max_length=500)
    city: str = Field(..., max_length=100)
    state: str = Field(..., max_length=100)
    postal_code: str = Field(..., max_length=20)


class UserAddressCreate(ShippingAddress):
    is_default: bool = False


class UserAddressUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    is_default: Optional[bool] = None


class UserAddressResponse(ShippingAddress):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    is_default: bool
    created_at: datetime
    updated_at: datetime


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class CheckoutRequest(BaseModel):
    """Either an inline shipping address or a saved address id."""

    shipping_address: Optional[ShippingAddress] = None
    address_id: Optional[uuid.UUID] = None
    courier_service: CourierService = CourierService.REGULAR
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_address(self):
        if self.shipping_address is None and self.address_id is None:
            raise ValueError("shipping_address or address_id is required")
        return self


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    product_name: str
    product_sku: str
    quantity: int
    price: Decimal
    line_total: Decimal


class TrackingEntry(BaseModel):
    status: str
    timestamp: str
    location: Optional[str] = None
    description: Optional[str] = None
    updated_by: Optional[str] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    user_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None

    subtotal: Decimal
    shipping_cost: Decimal
    total_amount: Decimal

    courier_service: CourierService
    shipping_address: dict[str, Any]
    shipping_estimate_fallback: bool = False
    notes: Optional[str] = None

    tracking_number: Optional[str] = None
    tracking_history: list[TrackingEntry] = []

    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    items: list[OrderItemResponse] = []


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    page: int
    page_size: int


class OrderStatusResponse(BaseModel):
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class AdminOrderStatusUpdate(BaseModel):
    """Staff update: order status, payment status, or both."""

    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_change(self):
        if self.status is None and self.payment_status is None:
            raise ValueError("status or payment_status is required")
        return self


class BulkStatusUpdate(BaseModel):
    order_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=100)
    status: OrderStatus


class BulkStatusUpdateResponse(BaseModel):
    updated_count: int
    skipped_count: int
    updated: list[str]
    skipped: list[dict[str, Any]]


# ============================================================================
# TRACKING SCHEMAS
# ============================================================================


class TrackingUpdate(BaseModel):
    tracking_status: str = Field(..., min_length=1, max_length=50)
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = Field(None, max_length=100)


class TrackingResponse(BaseModel):
    order_number: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    tracking_history: list[TrackingEntry] = []
    tracking_progress: int
    latest_status: Optional[TrackingEntry] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    courier_service: CourierService


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================


class PaymentTokenResponse(BaseModel):
    order_number: str
    snap_token: str
    redirect_url: Optional[str] = None


class NotificationResponse(BaseModel):
    success: bool = True
    order_number: str
    status: str
    applied: bool
    already_processed: bool = False
    message: Optional[str] = None


# ============================================================================
# SHIPPING SCHEMAS
# ============================================================================


class ShippingCalculateRequest(BaseModel):
    destination: str = Field(
        ..., min_length=1, max_length=100, description="Postal code or city"
    )
    weight: float = Field(1.0, gt=0, le=1000, description="Total weight in kg")
    courier_service: CourierService = CourierService.REGULAR


class CartShippingRequest(BaseModel):
    destination: str = Field(..., min_length=1, max_length=100)
    courier_service: CourierService = CourierService.REGULAR


class ShippingQuoteResponse(BaseModel):
    cost: Decimal
    etd_min_days: int
    etd_max_days: int
    courier_service: CourierService
    weight: float
    destination: str
    source: str
    used_fallback: bool
    base_rate: Optional[int] = None
    weight_category: Optional[str] = None


class CourierServiceOption(BaseModel):
    code: CourierService
    name: str
    description: str
    multiplier: float


# ============================================================================
# ADMIN SCHEMAS
# ============================================================================


class RestockRequest(BaseModel):
    quantity: int = Field(..., gt=0, le=100000)
    notes: Optional[str] = Field(None, max_length=500)


class RestockResponse(BaseModel):
    product_id: uuid.UUID
    sku: str
    stock: int
