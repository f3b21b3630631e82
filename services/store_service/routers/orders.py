"""Store orders router: checkout, order history, payment, cancellation, tracking."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from libs.auth.dependencies import get_current_user, require_permission
from libs.auth.models import AuthUser
from libs.auth.policy import Action
from libs.common.rate_limit import payment_limit
from libs.db.session import get_async_db
from services.store_service.errors import PaymentNotAllowed
from services.store_service.midtrans_client import (
    MidtransClient,
    get_midtrans_client,
)
from services.store_service.models import (
    AuditEntityType,
    Order,
    OrderStatus,
    PaymentStatus,
)
from services.store_service.routers._helpers import (
    load_order_for,
    log_audit,
    order_state,
)
from services.store_service.routers.addresses import get_owned_address
from services.store_service.schemas import (
    CheckoutRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
    PaymentTokenResponse,
    TrackingEntry,
    TrackingResponse,
    TrackingUpdate,
)
from services.store_service.services import orders as order_service
from services.store_service.services.shipping import (
    ShippingEstimator,
    get_shipping_estimator,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

router = APIRouter(prefix="/orders", tags=["orders"])


def build_tracking_response(order: Order) -> TrackingResponse:
    latest = order.latest_tracking
    return TrackingResponse(
        order_number=order.order_number,
        status=order.status,
        tracking_number=order.tracking_number,
        tracking_history=order.tracking_history or [],
        tracking_progress=order_service.tracking_progress(order),
        latest_status=TrackingEntry(**latest) if latest else None,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        courier_service=order.courier_service,
    )


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: CheckoutRequest,
    current_user: AuthUser = Depends(require_permission(Action.ORDER_CREATE)),
    db: AsyncSession = Depends(get_async_db),
    estimator: ShippingEstimator = Depends(get_shipping_estimator),
):
    """Create a pending order from the current user's cart."""
    if payload.address_id is not None:
        address = await get_owned_address(db, current_user.user_id, payload.address_id)
        shipping_address = address.as_shipping_address()
    else:
        shipping_address = payload.shipping_address.model_dump()

    return await order_service.create_order_from_cart(
        db,
        user_id=current_user.user_id,
        shipping_address=shipping_address,
        courier_service=payload.courier_service,
        notes=payload.notes,
        estimator=estimator,
    )


# ============================================================================
# ORDER HISTORY
# ============================================================================


@router.get("", response_model=OrderListResponse)
async def list_my_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission(Action.ORDER_READ)),
    db: AsyncSession = Depends(get_async_db),
):
    """List the current user's orders, newest first."""
    filters = [Order.user_id == current_user.user_id]
    if status_filter is not None:
        filters.append(Order.status == status_filter)

    total = await db.scalar(select(func.count()).select_from(Order).where(*filters))
    result = await db.execute(
        select(Order)
        .where(*filters)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in result.scalars().all()],
        total=total or 0,
        page=page,
        page_size=page_size,
    )


@router.get("/{order_number}", response_model=OrderResponse)
async def get_order(
    order_number: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await load_order_for(db, order_number, current_user, Action.ORDER_READ)


@router.get("/{order_number}/status", response_model=OrderStatusResponse)
async def get_order_status(
    order_number: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Lightweight status poll for the payment return page."""
    order = await load_order_for(db, order_number, current_user, Action.ORDER_READ)
    return OrderStatusResponse(
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
    )


# ============================================================================
# PAYMENT
# ============================================================================


@router.post("/{order_number}/payment", response_model=PaymentTokenResponse)
@payment_limit
async def create_payment(
    request: Request,
    order_number: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    gateway: MidtransClient = Depends(get_midtrans_client),
):
    """Open a Midtrans Snap session for an unpaid order."""
    order = await load_order_for(db, order_number, current_user, Action.ORDER_PAY)

    if order.payment_status == PaymentStatus.PAID:
        raise PaymentNotAllowed("Order already paid")
    if (
        order.payment_status != PaymentStatus.PENDING
        or order.status == OrderStatus.CANCELLED
    ):
        raise PaymentNotAllowed("Cannot create payment for a failed or cancelled order")

    result = await gateway.create_payment_token(order, current_user)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to create payment token: {result.error}",
        )

    return PaymentTokenResponse(
        order_number=order_number,
        snap_token=result.token,
        redirect_url=result.redirect_url,
    )


# ============================================================================
# STATUS CHANGES
# ============================================================================


@router.patch("/{order_number}/status", response_model=OrderResponse)
async def update_order_status(
    order_number: str,
    payload: OrderStatusUpdate,
    current_user: AuthUser = Depends(
        require_permission(Action.ORDER_UPDATE_STATUS)
    ),
    db: AsyncSession = Depends(get_async_db),
):
    """Move an order along its lifecycle (staff)."""
    order = await load_order_for(
        db, order_number, current_user, Action.ORDER_UPDATE_STATUS, lock=True
    )
    old_state = order_state(order)
    try:
        await order_service.update_order_status(
            db, order, payload.status, actor=current_user.user_id
        )
    except Exception:
        await db.rollback()
        raise

    await log_audit(
        db,
        entity_type=AuditEntityType.ORDER,
        entity_id=order.id,
        action="status_changed",
        performed_by=current_user.user_id,
        old_value=old_state,
        new_value=order_state(order),
    )
    await db.commit()
    return order


@router.post("/{order_number}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_number: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Cancel an unpaid order and return its stock."""
    order = await load_order_for(
        db, order_number, current_user, Action.ORDER_CANCEL, lock=True
    )
    try:
        await order_service.cancel_order(db, order, actor=current_user.user_id)
    except Exception:
        await db.rollback()
        raise
    await db.commit()
    return order


# ============================================================================
# TRACKING
# ============================================================================


@router.get("/{order_number}/tracking", response_model=TrackingResponse)
async def get_tracking(
    order_number: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await load_order_for(db, order_number, current_user, Action.TRACKING_READ)
    return build_tracking_response(order)


@router.put("/{order_number}/tracking", response_model=TrackingResponse)
async def update_tracking(
    order_number: str,
    payload: TrackingUpdate,
    current_user: AuthUser = Depends(require_permission(Action.TRACKING_UPDATE)),
    db: AsyncSession = Depends(get_async_db),
):
    """Append a shipment event (staff)."""
    order = await load_order_for(
        db, order_number, current_user, Action.TRACKING_UPDATE, lock=True
    )
    try:
        await order_service.update_tracking(
            db,
            order,
            payload.tracking_status,
            location=payload.location,
            description=payload.description,
            tracking_number=payload.tracking_number,
            updated_by=current_user.display_name,
        )
    except Exception:
        await db.rollback()
        raise
    await db.commit()
    return build_tracking_response(order)
