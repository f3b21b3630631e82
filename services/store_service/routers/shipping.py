"""Shipping estimates, supported cities and courier options."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from libs.auth.dependencies import require_permission
from libs.auth.models import AuthUser
from libs.auth.policy import Action
from libs.common.rate_limit import api_limit
from libs.db.session import get_async_db
from services.store_service.errors import EmptyCart
from services.store_service.schemas import (
    CartShippingRequest,
    CourierServiceOption,
    ShippingCalculateRequest,
    ShippingQuoteResponse,
)
from services.store_service.services import cart as cart_service
from services.store_service.services import shipping
from services.store_service.services.shipping import (
    ShippingEstimator,
    get_shipping_estimator,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.get("/cities", response_model=list[str])
async def get_supported_cities():
    return shipping.supported_cities()


@router.get("/origin")
async def get_origin():
    return shipping.ORIGIN


@router.get("/courier-services", response_model=list[CourierServiceOption])
async def get_courier_services(
    destination: Optional[str] = Query(None, max_length=100),
):
    """Courier tiers available for a destination (same day only for major cities)."""
    return shipping.available_courier_services(destination or "")


@router.post("/calculate", response_model=ShippingQuoteResponse)
@api_limit
async def calculate_shipping(
    request: Request,
    payload: ShippingCalculateRequest,
    estimator: ShippingEstimator = Depends(get_shipping_estimator),
):
    """Quote a shipment by destination and weight."""
    quote = await estimator.estimate(
        payload.destination, payload.weight, payload.courier_service
    )
    return quote.to_dict()


@router.post("/calculate-cart", response_model=ShippingQuoteResponse)
async def calculate_cart_shipping(
    payload: CartShippingRequest,
    current_user: AuthUser = Depends(require_permission(Action.SHIPPING_ESTIMATE)),
    db: AsyncSession = Depends(get_async_db),
    estimator: ShippingEstimator = Depends(get_shipping_estimator),
):
    """Quote shipping for the current user's cart."""
    cart = await cart_service.get_or_create_cart(db, current_user.user_id)
    if not cart.items:
        raise EmptyCart()

    weight = shipping.calculate_cart_weight(cart.items)
    quote = await estimator.estimate(
        payload.destination, weight, payload.courier_service
    )
    return quote.to_dict()
