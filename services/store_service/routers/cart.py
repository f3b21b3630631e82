"""Store cart router: view and edit the current user's cart."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import require_permission
from libs.auth.models import AuthUser
from libs.auth.policy import Action
from libs.db.session import get_async_db
from services.store_service.models import Cart
from services.store_service.schemas import (
    CartItemCreate,
    CartItemResponse,
    CartItemUpdate,
    CartResponse,
)
from services.store_service.services import cart as cart_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cart", tags=["cart"])

cart_user = require_permission(Action.CART_MANAGE)


def build_cart_response(cart: Cart) -> CartResponse:
    totals = cart_service.cart_totals(cart)
    return CartResponse(
        id=cart.id,
        items=[CartItemResponse.model_validate(item) for item in cart.items],
        item_count=totals["item_count"],
        subtotal=totals["subtotal"],
    )


@router.get("", response_model=CartResponse)
async def get_cart(
    current_user: AuthUser = Depends(cart_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get the current user's cart."""
    cart = await cart_service.get_or_create_cart(db, current_user.user_id)
    return build_cart_response(cart)


@router.post(
    "/items", response_model=CartItemResponse, status_code=status.HTTP_201_CREATED
)
async def add_cart_item(
    payload: CartItemCreate,
    current_user: AuthUser = Depends(cart_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Add a product to the cart (merges with an existing line)."""
    return await cart_service.add_item(
        db, current_user.user_id, payload.product_id, payload.quantity
    )


@router.put("/items/{item_id}", response_model=CartItemResponse)
async def update_cart_item(
    item_id: uuid.UUID,
    payload: CartItemUpdate,
    current_user: AuthUser = Depends(cart_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Change the quantity of a cart line."""
    return await cart_service.update_item(
        db, current_user.user_id, item_id, payload.quantity
    )


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_cart_item(
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(cart_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove a line from the cart."""
    await cart_service.remove_item(db, current_user.user_id, item_id)


@router.delete("/clear", response_model=CartResponse)
async def clear_cart(
    current_user: AuthUser = Depends(cart_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove every item from the cart."""
    await cart_service.clear_cart(db, current_user.user_id)
    cart = await cart_service.get_or_create_cart(db, current_user.user_id)
    return build_cart_response(cart)
