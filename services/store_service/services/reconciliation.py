"""Apply Midtrans payment notifications to orders.

The order row is locked before the idempotency check, so a duplicate delivery
racing the first one waits and then sees ``paid``. Nothing is mutated before
the signature and the amount have been verified.
"""

from dataclasses import dataclass
from typing import Optional

from libs.common.currency import amounts_match
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.store_service.errors import (
    InvalidSignature,
    InvalidTransition,
    PaymentAmountMismatch,
    StoreError,
)
from services.store_service.midtrans_client import (
    STATUS_CHALLENGE,
    STATUS_FAILED,
    STATUS_PAID,
    STATUS_PENDING,
    MidtransClient,
    PaymentNotification,
)
from services.store_service.models import Order, OrderStatus, PaymentStatus
from services.store_service.services import orders as order_service
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class NotificationResult:
    order_number: str
    status: str
    applied: bool
    already_processed: bool = False
    message: Optional[str] = None


async def _apply_failure(
    db: AsyncSession, order: Order, notification: PaymentNotification
) -> None:
    """Gateway-side failure: mark the payment failed and release stock.

    Runs regardless of the customer-facing cancellation rules; the stock was
    reserved for a payment that will never arrive.
    """
    await order_service.update_payment_status(
        db, order, PaymentStatus.FAILED, notification.raw
    )
    if order.status == OrderStatus.CANCELLED:
        return
    await order_service.release_order_stock(db, order, performed_by="payment_gateway")
    order.status = OrderStatus.CANCELLED
    if order.cancelled_at is None:
        order.cancelled_at = utc_now()
    await db.flush()


async def _apply(
    db: AsyncSession, order: Order, notification: PaymentNotification
) -> bool:
    if notification.status == STATUS_PAID:
        await order_service.update_payment_status(
            db, order, PaymentStatus.PAID, notification.raw
        )
    elif notification.status == STATUS_FAILED:
        await _apply_failure(db, order, notification)
    elif notification.status == STATUS_PENDING:
        await order_service.update_payment_status(
            db, order, PaymentStatus.PENDING, notification.raw
        )
    else:
        # challenge / unknown: keep the payload, payment status unchanged
        order.payment_response = notification.raw
        return False
    return True


async def handle_payment_notification(
    db: AsyncSession,
    payload: dict,
    gateway: Optional[MidtransClient] = None,
) -> NotificationResult:
    """Verify a notification and apply it to its order.

    Raises:
        ValueError: the payload is not a Midtrans notification.
        OrderNotFound: no order has the notification's order_id.
        InvalidSignature: the signature does not match.
        PaymentAmountMismatch: gross_amount differs from the order total.
    """
    gateway = gateway or MidtransClient()
    notification = gateway.parse_notification(payload)

    try:
        order = await order_service.get_order_by_number(
            db, notification.order_id, lock=True
        )

        if order.payment_status == PaymentStatus.PAID:
            order_number = order.order_number
            # Release the row lock without touching the order
            await db.rollback()
            logger.info("Notification for already paid order %s ignored", order_number)
            return NotificationResult(
                order_number=order_number,
                status=notification.status,
                applied=False,
                already_processed=True,
                message="Payment already processed",
            )

        if not gateway.verify_signature(notification):
            logger.warning(
                "Invalid signature for order %s",
                notification.order_id,
                extra={
                    "extra_fields": {
                        "transaction_status": notification.transaction_status,
                        "status_code": notification.status_code,
                    }
                },
            )
            raise InvalidSignature()

        if not amounts_match(notification.gross_amount, order.total_amount):
            logger.warning(
                "Gross amount mismatch for order %s: notified=%s expected=%s",
                order.order_number,
                notification.gross_amount,
                order.total_amount,
            )
            raise PaymentAmountMismatch()

        try:
            applied = await _apply(db, order, notification)
        except InvalidTransition as exc:
            # e.g. settlement arriving after the order was cancelled
            logger.error(
                "Notification %s for order %s rejected by state machine: %s",
                notification.status,
                order.order_number,
                exc.detail,
            )
            order.payment_response = notification.raw
            applied = False

        if notification.payment_type:
            order.payment_method = notification.payment_type

        await db.commit()
    except StoreError:
        await db.rollback()
        raise

    logger.info(
        "Notification %s (%s) for order %s applied=%s",
        notification.transaction_status,
        notification.status,
        order.order_number,
        applied,
    )
    if notification.status == STATUS_CHALLENGE:
        logger.warning("Order %s payment flagged for review", order.order_number)

    return NotificationResult(
        order_number=order.order_number,
        status=notification.status,
        applied=applied,
    )
