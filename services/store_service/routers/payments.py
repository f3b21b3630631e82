"""Payment gateway webhooks."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.store_service.midtrans_client import (
    MidtransClient,
    get_midtrans_client,
)
from services.store_service.schemas import NotificationResponse
from services.store_service.services.reconciliation import (
    handle_payment_notification,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["payments"])


@router.post("/notification", response_model=NotificationResponse)
async def payment_notification(
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_async_db),
    gateway: MidtransClient = Depends(get_midtrans_client),
):
    """
    Midtrans HTTP notification endpoint.

    Authenticated by the notification signature, not by a bearer token.
    Signature and order lookup failures are returned as 403/404 so Midtrans
    shows them in its dashboard.
    """
    try:
        result = await handle_payment_notification(db, payload, gateway)
    except ValueError as exc:
        logger.warning("Malformed payment notification: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc))

    return NotificationResponse(
        order_number=result.order_number,
        status=result.status,
        applied=result.applied,
        already_processed=result.already_processed,
        message=result.message
        or ("Notification handled" if result.applied else "Notification recorded"),
    )
