"""Shared helper functions for store routers."""

import uuid
from typing import Optional

from libs.auth.models import AuthUser
from libs.auth.policy import Action, Target, enforce
from services.store_service.models import AuditEntityType, Order, StoreAuditLog
from services.store_service.services import orders as order_service
from sqlalchemy.ext.asyncio import AsyncSession


async def log_audit(
    db: AsyncSession,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID,
    action: str,
    performed_by: str,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
    notes: Optional[str] = None,
):
    """Log an audit event."""
    audit_log = StoreAuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        performed_by=performed_by,
        notes=notes,
    )
    db.add(audit_log)


async def load_order_for(
    db: AsyncSession,
    order_number: str,
    user: AuthUser,
    action: Action,
    *,
    lock: bool = False,
) -> Order:
    """Load an order and check ``user`` may perform ``action`` on it."""
    order = await order_service.get_order_by_number(db, order_number, lock=lock)
    enforce(user, action, Target(owner_id=order.user_id))
    return order


def order_state(order: Order) -> dict:
    return {
        "status": order.status.value,
        "payment_status": order.payment_status.value,
    }
