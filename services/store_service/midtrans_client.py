"""
Midtrans Snap client for payment sessions and notification verification.

Provides:
- Snap token creation for an order
- Notification parsing into a canonical payment status
- SHA-512 signature verification of notifications
"""

import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from libs.common.config import Settings, get_settings
from libs.common.currency import to_gateway_amount
from libs.common.logging import get_logger
from services.store_service.errors import GatewayUnavailable

logger = get_logger(__name__)

# Canonical statuses produced by parse_notification
STATUS_PAID = "paid"
STATUS_PENDING = "pending"
STATUS_FAILED = "failed"
STATUS_CHALLENGE = "challenge"
STATUS_UNKNOWN = "unknown"

FAILED_TRANSACTION_STATUSES = frozenset({"cancel", "deny", "expire"})

SHIPPING_ITEM_ID = "SHIPPING"
ITEM_NAME_MAX_LENGTH = 50  # Midtrans rejects longer item names


@dataclass
class PaymentTokenResult:
    """Result of a Snap token request."""

    success: bool
    token: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PaymentNotification:
    """A parsed Midtrans HTTP notification."""

    order_id: str
    status: str  # paid, pending, failed, challenge, unknown
    transaction_status: Optional[str]
    fraud_status: Optional[str]
    payment_type: Optional[str]
    status_code: str
    gross_amount: str
    signature_key: str
    raw: dict = field(default_factory=dict)


def map_transaction_status(
    transaction_status: Optional[str], fraud_status: Optional[str]
) -> str:
    """Collapse Midtrans transaction/fraud status into a canonical status."""
    if transaction_status == "capture":
        if fraud_status == "accept":
            return STATUS_PAID
        if fraud_status == "challenge":
            return STATUS_CHALLENGE
        return STATUS_UNKNOWN
    if transaction_status == "settlement":
        return STATUS_PAID
    if transaction_status in FAILED_TRANSACTION_STATUSES:
        return STATUS_FAILED
    if transaction_status == "pending":
        return STATUS_PENDING
    return STATUS_UNKNOWN


class MidtransClient:
    """Async client for the Midtrans Snap API."""

    def __init__(
        self,
        server_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.server_key = (
            server_key if server_key is not None else self.settings.MIDTRANS_SERVER_KEY
        )
        self._transport = transport

    @property
    def _headers(self) -> dict:
        # Basic auth: server key as username, empty password
        token = base64.b64encode(f"{self.server_key}:".encode()).decode()
        return {
            "Authorization": f"Basic {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    # =========================================================================
    # Snap token
    # =========================================================================

    def build_transaction_params(self, order, customer) -> dict:
        """
        Build the Snap transaction request for an order.

        Args:
            order: Order with items loaded
            customer: AuthUser paying for the order
        """
        frontend_url = self.settings.FRONTEND_URL.rstrip("/")
        customer_name = customer.display_name
        customer_phone = customer.phone or order.shipping_address.get("phone", "")

        params: dict[str, Any] = {
            "transaction_details": {
                "order_id": order.order_number,
                "gross_amount": to_gateway_amount(order.total_amount),
            },
            "customer_details": {
                "first_name": customer_name,
                "email": customer.email or "",
                "phone": customer_phone,
            },
            "item_details": self.build_item_details(order),
            "callbacks": {
                "finish": f"{frontend_url}/payment/success",
                "unfinish": f"{frontend_url}/payment/pending",
                "error": f"{frontend_url}/payment/failed",
            },
        }

        address = order.shipping_address or {}
        if address:
            params["customer_details"]["shipping_address"] = {
                "first_name": address.get("name") or customer_name,
                "phone": address.get("phone") or customer_phone,
                "address": address.get("address", ""),
                "city": address.get("city", ""),
                "postal_code": address.get("postal_code", ""),
                "country_code": "IDN",
            }
        return params

    @staticmethod
    def build_item_details(order) -> list[dict]:
        items = [
            {
                "id": str(item.product_id or item.product_sku),
                "price": to_gateway_amount(item.price),
                "quantity": item.quantity,
                "name": item.product_name[:ITEM_NAME_MAX_LENGTH],
            }
            for item in order.items
        ]
        if order.shipping_cost and order.shipping_cost > 0:
            items.append(
                {
                    "id": SHIPPING_ITEM_ID,
                    "price": to_gateway_amount(order.shipping_cost),
                    "quantity": 1,
                    "name": "Shipping Cost",
                }
            )
        return items

    async def create_payment_token(self, order, customer) -> PaymentTokenResult:
        """
        Request a Snap token for an order.

        Gateway-side rejections come back as ``success=False``. Transport faults
        (timeouts, connection errors) raise GatewayUnavailable. Never retried:
        a retry could open a second payment session for the same order.

        Raises:
            GatewayUnavailable: If Midtrans cannot be reached
        """
        params = self.build_transaction_params(order, customer)

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.MIDTRANS_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.settings.midtrans_snap_url,
                    headers=self._headers,
                    json=params,
                )
        except httpx.TransportError as exc:
            logger.error(
                "Midtrans unreachable for order %s: %r", order.order_number, exc
            )
            raise GatewayUnavailable() from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            messages = data.get("error_messages") or [
                f"Midtrans returned HTTP {response.status_code}"
            ]
            error = "; ".join(str(m) for m in messages)
            logger.error(
                "Midtrans API error for order %s: %s - %s",
                order.order_number,
                response.status_code,
                error,
            )
            return PaymentTokenResult(success=False, error=error)

        token = data.get("token")
        if not token:
            return PaymentTokenResult(
                success=False, error="Midtrans response did not include a token"
            )

        logger.info("Created Snap token for order %s", order.order_number)
        return PaymentTokenResult(
            success=True,
            token=token,
            redirect_url=data.get("redirect_url"),
        )

    # =========================================================================
    # Notifications
    # =========================================================================

    def parse_notification(self, payload: dict) -> PaymentNotification:
        """Parse a notification body. Does not verify the signature."""
        if not isinstance(payload, dict) or not payload.get("order_id"):
            raise ValueError("Notification is missing order_id")

        transaction_status = payload.get("transaction_status")
        fraud_status = payload.get("fraud_status")
        return PaymentNotification(
            order_id=str(payload["order_id"]),
            status=map_transaction_status(transaction_status, fraud_status),
            transaction_status=transaction_status,
            fraud_status=fraud_status,
            payment_type=payload.get("payment_type"),
            status_code=str(payload.get("status_code", "")),
            gross_amount=str(payload.get("gross_amount", "")),
            signature_key=str(payload.get("signature_key", "")),
            raw=payload,
        )

    def expected_signature(
        self, order_id: str, status_code: str, gross_amount: str
    ) -> str:
        raw = f"{order_id}{status_code}{gross_amount}{self.server_key}"
        return hashlib.sha512(raw.encode()).hexdigest()

    def verify_signature(self, notification: PaymentNotification) -> bool:
        if not self.server_key or not notification.signature_key:
            return False
        expected = self.expected_signature(
            notification.order_id,
            notification.status_code,
            notification.gross_amount,
        )
        return hmac.compare_digest(expected, notification.signature_key.lower())


def get_midtrans_client() -> MidtransClient:
    """Get a MidtransClient instance."""
    return MidtransClient()
