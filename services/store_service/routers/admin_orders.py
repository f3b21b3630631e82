"""Admin store orders and inventory router."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_permission
from libs.auth.models import AuthUser
from libs.auth.policy import Action, enforce
from libs.db.session import get_async_db
from services.store_service.models import (
    AuditEntityType,
    Order,
    OrderStatus,
    PaymentStatus,
    Product,
)
from services.store_service.routers._helpers import log_audit, order_state
from services.store_service.schemas import (
    AdminOrderStatusUpdate,
    BulkStatusUpdate,
    BulkStatusUpdateResponse,
    OrderListResponse,
    OrderResponse,
    RestockRequest,
    RestockResponse,
)
from services.store_service.services import inventory
from services.store_service.services import orders as order_service
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

router = APIRouter(tags=["admin-store"])


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_all_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    search: Optional[str] = Query(None, max_length=50),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_permission(Action.ORDER_LIST_ALL)),
    db: AsyncSession = Depends(get_async_db),
):
    """List all orders."""
    query = select(Order)

    if status_filter:
        query = query.where(Order.status == status_filter)
    if payment_status:
        query = query.where(Order.payment_status == payment_status)
    if search:
        query = query.where(
            Order.order_number.ilike(f"%{search}%") | (Order.user_id == search)
        )

    # Count
    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query) or 0

    # Paginate
    query = (
        query.options(selectinload(Order.items))
        .order_by(Order.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    result = await db.execute(query)
    orders = result.scalars().all()

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order_admin(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_permission(Action.ORDER_LIST_ALL)),
    db: AsyncSession = Depends(get_async_db),
):
    """Get order detail (admin)."""
    return await order_service.get_order_by_id(db, order_id)


@router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    status_update: AdminOrderStatusUpdate,
    current_user: AuthUser = Depends(
        require_permission(Action.ORDER_UPDATE_STATUS)
    ),
    db: AsyncSession = Depends(get_async_db),
):
    """Update order status and/or payment status.

    Payment status is applied first, so ``payment_status=paid`` together with
    ``status=processing`` is a single confirmation.
    """
    order = await order_service.get_order_by_id(db, order_id, lock=True)
    old_state = order_state(order)

    try:
        if status_update.payment_status is not None:
            enforce(current_user, Action.PAYMENT_UPDATE_STATUS)
            await order_service.update_payment_status(
                db, order, status_update.payment_status
            )
        if status_update.status is not None and status_update.status != order.status:
            await order_service.update_order_status(
                db, order, status_update.status, actor=current_user.user_id
            )
    except Exception:
        await db.rollback()
        raise

    if status_update.notes:
        order.notes = status_update.notes

    await log_audit(
        db,
        AuditEntityType.ORDER,
        order.id,
        "status_changed",
        current_user.user_id,
        old_value=old_state,
        new_value=order_state(order),
        notes=status_update.notes,
    )
    await db.commit()
    return order


@router.post("/orders/bulk-update-status", response_model=BulkStatusUpdateResponse)
async def bulk_update_order_status(
    payload: BulkStatusUpdate,
    current_user: AuthUser = Depends(
        require_permission(Action.ORDER_UPDATE_STATUS)
    ),
    db: AsyncSession = Depends(get_async_db),
):
    """Update many orders at once; rejected transitions are skipped and reported."""
    result = await order_service.bulk_update_status(
        db, payload.order_ids, payload.status, actor=current_user.user_id
    )
    return BulkStatusUpdateResponse(
        updated_count=result.updated_count,
        skipped_count=result.skipped_count,
        updated=result.updated,
        skipped=result.skipped,
    )


# ============================================================================
# INVENTORY
# ============================================================================


@router.post("/products/{product_id}/restock", response_model=RestockResponse)
async def restock_product(
    product_id: uuid.UUID,
    payload: RestockRequest,
    current_user: AuthUser = Depends(require_permission(Action.INVENTORY_RESTOCK)),
    db: AsyncSession = Depends(get_async_db),
):
    """Add stock to a product."""
    try:
        new_stock = await inventory.restock(
            db,
            product_id,
            payload.quantity,
            performed_by=current_user.user_id,
            notes=payload.notes,
        )
    except Exception:
        await db.rollback()
        raise

    product = await db.get(Product, product_id)
    await log_audit(
        db,
        AuditEntityType.INVENTORY,
        product_id,
        "stock_restocked",
        current_user.user_id,
        old_value={"stock": new_stock - payload.quantity},
        new_value={"stock": new_stock},
        notes=payload.notes,
    )
    await db.commit()

    return RestockResponse(product_id=product_id, sku=product.sku, stock=new_stock)
