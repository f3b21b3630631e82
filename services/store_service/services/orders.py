"""Order lifecycle: checkout, status/payment transitions, tracking, cancellation.

``create_order_from_cart`` is a complete unit of work and commits. The
transition functions (``update_order_status``, ``update_payment_status``,
``cancel_order``, ``update_tracking``) only flush, so they compose inside a
caller's transaction; the caller commits.

Paid orders advance ``pending -> processing`` in exactly one place,
``update_payment_status``. ``update_order_status(processing)`` on an unpaid
order delegates to it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from libs.common.currency import ZERO, to_money
from libs.common.datetime_utils import store_today, utc_now
from libs.common.logging import get_logger
from services.store_service.errors import (
    CannotCancelPaidOrder,
    EmptyCart,
    InvalidTransition,
    OrderNotFound,
    StoreError,
    TrackingNotAllowed,
)
from services.store_service.models import (
    Cart,
    CartItem,
    CourierService,
    Order,
    OrderItem,
    OrderSequence,
    OrderStatus,
    PaymentStatus,
)
from services.store_service.services import inventory
from services.store_service.services.shipping import (
    ShippingEstimator,
    WeightStrategy,
    calculate_cart_weight,
    shipping_destination,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

# ============================================================================
# TRANSITION TABLES
# ============================================================================

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.EXPIRED}
    ),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

TRACKING_ASSIGNED = "tracking_assigned"

TRACKING_DESCRIPTIONS = {
    "pending": "Pesanan sedang menunggu konfirmasi",
    "processing": "Pesanan sedang diproses",
    "packed": "Pesanan telah dikemas dan siap dikirim",
    "in_transit": "Pesanan dalam perjalanan",
    "shipped": "Pesanan telah dikirim",
    "out_for_delivery": "Pesanan sedang dalam pengiriman terakhir",
    "delivered": "Pesanan telah diterima",
    TRACKING_ASSIGNED: "Nomor resi telah diberikan",
}
UNKNOWN_TRACKING_DESCRIPTION = "Status tidak diketahui"

TRACKING_PROGRESS = {
    "pending": 10,
    "processing": 25,
    "packed": 40,
    "in_transit": 60,
    "shipped": 75,
    "out_for_delivery": 90,
    "delivered": 100,
}

# Tracking statuses that move a processing order to shipped
SHIPPING_TRACKING_STATUSES = frozenset({"shipped", "in_transit"})

ORDER_NUMBER_PREFIX = "ORD"


# ============================================================================
# LOOKUPS
# ============================================================================


def _order_query(lock: bool = False):
    query = select(Order).options(selectinload(Order.items))
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    return query


async def get_order_by_number(
    db: AsyncSession, order_number: str, *, lock: bool = False
) -> Order:
    """Load an order (items included) by its public number.

    Raises:
        OrderNotFound: no order has that number.
    """
    result = await db.execute(
        _order_query(lock).where(Order.order_number == order_number)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFound(order_number)
    return order


async def get_order_by_id(
    db: AsyncSession, order_id: uuid.UUID, *, lock: bool = False
) -> Order:
    result = await db.execute(_order_query(lock).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


async def next_order_number(db: AsyncSession, now: Optional[datetime] = None) -> str:
    """Allocate ``ORD-YYYYMMDD-NNNN`` from the locked per-day counter."""
    day = store_today(now)
    result = await db.execute(
        select(OrderSequence)
        .where(OrderSequence.day == day)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    sequence = result.scalar_one_or_none()
    if sequence is None:
        sequence = OrderSequence(day=day, last_value=0)
        db.add(sequence)

    sequence.last_value += 1
    await db.flush()
    return f"{ORDER_NUMBER_PREFIX}-{day:%Y%m%d}-{sequence.last_value:04d}"


# ============================================================================
# CHECKOUT
# ============================================================================


async def _load_cart(db: AsyncSession, user_id: str) -> Optional[Cart]:
    result = await db.execute(
        select(Cart)
        .where(Cart.user_id == user_id)
        .options(selectinload(Cart.items).selectinload(CartItem.product))
    )
    return result.scalar_one_or_none()


async def create_order_from_cart(
    db: AsyncSession,
    *,
    user_id: str,
    shipping_address: dict,
    courier_service: CourierService = CourierService.REGULAR,
    notes: Optional[str] = None,
    estimator: Optional[ShippingEstimator] = None,
    weight_strategy: Optional[WeightStrategy] = None,
) -> Order:
    """Turn the user's cart into a pending order.

    The shipping quote is fetched before any stock lock is taken. Stock
    reservation, order insertion and cart clearing then commit together; any
    failure rolls all of it back.

    Raises:
        EmptyCart: the user has no cart items.
        InsufficientStock: an item cannot be reserved.
    """
    cart = await _load_cart(db, user_id)
    if cart is None or not cart.items:
        raise EmptyCart()

    courier_service = CourierService(courier_service)
    estimator = estimator or ShippingEstimator()
    weight = calculate_cart_weight(cart.items, weight_strategy)
    quote = await estimator.estimate(
        shipping_destination(shipping_address), weight, courier_service
    )

    order_id = uuid.uuid4()
    cart_items = sorted(cart.items, key=lambda item: str(item.product_id))

    try:
        subtotal = ZERO
        order_items = []
        for cart_item in cart_items:
            await inventory.reserve(
                db,
                cart_item.product_id,
                cart_item.quantity,
                reference_type="order",
                reference_id=str(order_id),
                performed_by=user_id,
            )
            price = to_money(cart_item.price)
            line_total = to_money(price * cart_item.quantity)
            subtotal += line_total
            order_items.append(
                OrderItem(
                    product_id=cart_item.product_id,
                    product_name=cart_item.product.name,
                    product_sku=cart_item.product.sku,
                    quantity=cart_item.quantity,
                    price=price,
                    line_total=line_total,
                )
            )

        shipping_cost = to_money(quote.cost)
        order = Order(
            id=order_id,
            order_number=await next_order_number(db),
            user_id=user_id,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total_amount=subtotal + shipping_cost,
            courier_service=courier_service,
            shipping_address=dict(shipping_address),
            shipping_estimate_fallback=quote.used_fallback,
            notes=notes,
            tracking_history=[],
            items=order_items,
        )
        db.add(order)

        cart.items.clear()

        await db.commit()
    except StoreError as exc:
        await db.rollback()
        logger.info("Checkout rejected for user %s: %s", user_id, exc.code)
        raise
    except Exception:
        await db.rollback()
        logger.exception("Checkout failed for user %s", user_id)
        raise

    logger.info(
        "Created order %s for user %s (total=%s, shipping_fallback=%s)",
        order.order_number,
        user_id,
        order.total_amount,
        quote.used_fallback,
    )
    return order


# ============================================================================
# TRANSITIONS
# ============================================================================


async def update_payment_status(
    db: AsyncSession,
    order: Order,
    payment_status: PaymentStatus,
    raw_response: Optional[dict] = None,
) -> Order:
    """Set the payment status and store the raw gateway payload.

    Moving to ``paid`` stamps ``paid_at`` and advances a pending order to
    processing.

    Raises:
        InvalidTransition: the payment status cannot move to ``payment_status``.
    """
    payment_status = PaymentStatus(payment_status)
    current = order.payment_status
    if payment_status != current and payment_status not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransition(current, payment_status)

    order.payment_status = payment_status
    if raw_response is not None:
        order.payment_response = raw_response

    if payment_status == PaymentStatus.PAID:
        if order.paid_at is None:
            order.paid_at = utc_now()
        if order.status == OrderStatus.PENDING:
            order.status = OrderStatus.PROCESSING

    await db.flush()
    logger.info(
        "Order %s payment %s -> %s (status=%s)",
        order.order_number,
        current.value,
        payment_status.value,
        order.status.value,
    )
    return order


async def release_order_stock(
    db: AsyncSession, order: Order, *, performed_by: str = "system"
) -> None:
    """Return every item's quantity to stock, in product-id order."""
    for item in sorted(order.items, key=lambda i: str(i.product_id)):
        await inventory.restore(
            db,
            item.product_id,
            item.quantity,
            reference_type="order",
            reference_id=str(order.id),
            performed_by=performed_by,
        )


async def cancel_order(
    db: AsyncSession, order: Order, *, actor: str = "system"
) -> Order:
    """Cancel an unpaid pending/processing order and restore its stock.

    Raises:
        CannotCancelPaidOrder: the order has been paid.
        InvalidTransition: the order is already shipped, delivered or cancelled.
    """
    if order.payment_status == PaymentStatus.PAID:
        raise CannotCancelPaidOrder()
    if order.status not in CANCELLABLE_STATUSES:
        raise InvalidTransition(order.status, OrderStatus.CANCELLED)

    await release_order_stock(db, order, performed_by=actor)

    order.status = OrderStatus.CANCELLED
    order.cancelled_at = utc_now()
    if order.payment_status == PaymentStatus.PENDING:
        order.payment_status = PaymentStatus.FAILED

    await db.flush()
    logger.info("Order %s cancelled by %s", order.order_number, actor)
    return order


def _mark_shipped(order: Order) -> None:
    order.status = OrderStatus.SHIPPED
    if order.shipped_at is None:
        order.shipped_at = utc_now()


def _mark_delivered(order: Order) -> None:
    if order.status == OrderStatus.PROCESSING:
        _mark_shipped(order)
    order.status = OrderStatus.DELIVERED
    if order.delivered_at is None:
        order.delivered_at = utc_now()


async def update_order_status(
    db: AsyncSession,
    order: Order,
    new_status: OrderStatus,
    *,
    actor: str = "system",
) -> Order:
    """Move an order along the transition table.

    Raises:
        InvalidTransition: ``new_status`` is not reachable from the current status.
        CannotCancelPaidOrder: cancelling a paid order.
    """
    new_status = OrderStatus(new_status)
    current = order.status
    if new_status not in ORDER_TRANSITIONS[current]:
        raise InvalidTransition(current, new_status)

    if new_status == OrderStatus.CANCELLED:
        return await cancel_order(db, order, actor=actor)

    if new_status == OrderStatus.PROCESSING:
        if order.payment_status == PaymentStatus.PENDING:
            # Manual payment confirmation goes through the payment axis
            return await update_payment_status(db, order, PaymentStatus.PAID)
        order.status = OrderStatus.PROCESSING
    elif new_status == OrderStatus.SHIPPED:
        _mark_shipped(order)
    elif new_status == OrderStatus.DELIVERED:
        _mark_delivered(order)

    await db.flush()
    logger.info(
        "Order %s status %s -> %s by %s",
        order.order_number,
        current.value,
        new_status.value,
        actor,
    )
    return order


@dataclass
class BulkUpdateResult:
    updated: list[str] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


async def bulk_update_status(
    db: AsyncSession,
    order_ids: Iterable[uuid.UUID],
    new_status: OrderStatus,
    *,
    actor: str,
) -> BulkUpdateResult:
    """Apply ``update_order_status`` to many orders, skipping rejected ones.

    Rejections are detected before any mutation, so skipped orders are left
    untouched. Commits once at the end.
    """
    result = BulkUpdateResult()
    for order_id in sorted(set(order_ids), key=str):
        try:
            order = await get_order_by_id(db, order_id, lock=True)
            await update_order_status(db, order, new_status, actor=actor)
        except StoreError as exc:
            result.skipped.append(
                {"order_id": str(order_id), "code": exc.code, "detail": exc.detail}
            )
            continue
        result.updated.append(order.order_number)

    await db.commit()
    logger.info(
        "Bulk status update to %s by %s: updated=%d skipped=%d",
        OrderStatus(new_status).value,
        actor,
        result.updated_count,
        result.skipped_count,
    )
    return result


# ============================================================================
# TRACKING
# ============================================================================


def _tracking_entry(
    status: str,
    *,
    location: Optional[str] = None,
    description: Optional[str] = None,
    updated_by: Optional[str] = None,
) -> dict:
    return {
        "status": status,
        "timestamp": utc_now().isoformat(),
        "location": location,
        "description": description
        or TRACKING_DESCRIPTIONS.get(status, UNKNOWN_TRACKING_DESCRIPTION),
        "updated_by": updated_by or "system",
    }


async def update_tracking(
    db: AsyncSession,
    order: Order,
    tracking_status: str,
    *,
    location: Optional[str] = None,
    description: Optional[str] = None,
    tracking_number: Optional[str] = None,
    updated_by: Optional[str] = None,
) -> Order:
    """Append a tracking event and advance the order status it implies.

    Raises:
        TrackingNotAllowed: the order is not a paid processing/shipped order.
    """
    if not order.can_update_tracking:
        raise TrackingNotAllowed()

    history = list(order.tracking_history or [])

    if tracking_number and not order.tracking_number:
        order.tracking_number = tracking_number
        history.append(
            _tracking_entry(
                TRACKING_ASSIGNED,
                description=f"Nomor resi {tracking_number} telah diberikan",
                updated_by=updated_by,
            )
        )

    history.append(
        _tracking_entry(
            tracking_status,
            location=location,
            description=description,
            updated_by=updated_by,
        )
    )
    # New list so the JSON column is flagged dirty
    order.tracking_history = history

    if tracking_status == OrderStatus.DELIVERED.value:
        _mark_delivered(order)
    elif (
        tracking_status in SHIPPING_TRACKING_STATUSES
        and order.status == OrderStatus.PROCESSING
    ):
        _mark_shipped(order)

    await db.flush()
    logger.info(
        "Order %s tracking %s (status=%s)",
        order.order_number,
        tracking_status,
        order.status.value,
    )
    return order


def tracking_progress(order: Order) -> int:
    """0-100 progress from the latest tracking status, else the order status."""
    # Unlisted statuses (tracking_assigned, carrier-specific ones) are skipped
    # instead of scoring 0, so appending one never lowers progress
    for entry in reversed(order.tracking_history or []):
        if entry.get("status") in TRACKING_PROGRESS:
            return TRACKING_PROGRESS[entry["status"]]
    status = getattr(order.status, "value", order.status)
    return TRACKING_PROGRESS.get(status, 0)

