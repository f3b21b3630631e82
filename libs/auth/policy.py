"""Access policy for the store API.

Every route asks one question, ``evaluate(role, action, target)``, instead of
sprinkling role comparisons through handlers. Customers act on their own
resources; admins and superadmins manage everything.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status

from libs.auth.models import AuthUser, Role
from libs.common.logging import get_logger

logger = get_logger(__name__)


class Action(str, enum.Enum):
    CART_MANAGE = "cart:manage"
    ADDRESS_MANAGE = "address:manage"
    ORDER_CREATE = "order:create"
    ORDER_READ = "order:read"
    ORDER_PAY = "order:pay"
    ORDER_CANCEL = "order:cancel"
    TRACKING_READ = "tracking:read"
    SHIPPING_ESTIMATE = "shipping:estimate"
    # Staff only
    ORDER_LIST_ALL = "order:list_all"
    ORDER_UPDATE_STATUS = "order:update_status"
    PAYMENT_UPDATE_STATUS = "payment:update_status"
    TRACKING_UPDATE = "tracking:update"
    INVENTORY_RESTOCK = "inventory:restock"


@dataclass(frozen=True)
class Target:
    """The resource an action applies to."""

    owner_id: Optional[str] = None


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


# Actions a customer may perform, always scoped to resources they own
CUSTOMER_ACTIONS = frozenset(
    {
        Action.CART_MANAGE,
        Action.ADDRESS_MANAGE,
        Action.ORDER_CREATE,
        Action.ORDER_READ,
        Action.ORDER_PAY,
        Action.ORDER_CANCEL,
        Action.TRACKING_READ,
        Action.SHIPPING_ESTIMATE,
    }
)

STAFF_ROLES = frozenset({Role.ADMIN, Role.SUPERADMIN})


def evaluate(
    role: Role,
    action: Action,
    target: Optional[Target] = None,
    *,
    actor_id: Optional[str] = None,
) -> PolicyDecision:
    """Decide whether ``role`` may perform ``action`` on ``target``."""
    if role in STAFF_ROLES:
        return PolicyDecision(True, "staff")

    if role == Role.CUSTOMER and action in CUSTOMER_ACTIONS:
        if target is None or target.owner_id is None:
            return PolicyDecision(True, "customer")
        if actor_id is not None and target.owner_id == actor_id:
            return PolicyDecision(True, "owner")
        return PolicyDecision(False, "not the owner")

    return PolicyDecision(False, f"{role.value} may not {action.value}")


def enforce(
    user: AuthUser, action: Action, target: Optional[Target] = None
) -> None:
    """Raise 403 (or 404 for foreign resources) when the policy denies."""
    decision = evaluate(user.role, action, target, actor_id=user.user_id)
    if decision:
        return

    logger.info(
        "Access denied for %s on %s: %s", user.user_id, action.value, decision.reason
    )
    if target is not None and decision.reason == "not the owner":
        # Do not reveal that another user's resource exists
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient privileges"
    )
