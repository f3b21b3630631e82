"""Cart operations: one cart per user, quantities 1..10, price snapshots."""

import uuid
from decimal import Decimal

from libs.common.currency import ZERO, to_money
from libs.common.logging import get_logger
from services.store_service.errors import (
    CartItemNotFound,
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    ProductUnavailable,
)
from services.store_service.models import (
    MAX_CART_ITEM_QUANTITY,
    Cart,
    CartItem,
    Product,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


def _validate_quantity(quantity: int) -> None:
    if quantity < 1 or quantity > MAX_CART_ITEM_QUANTITY:
        raise InvalidQuantity(
            f"Quantity must be between 1 and {MAX_CART_ITEM_QUANTITY}"
        )


async def _load_product(db: AsyncSession, product_id: uuid.UUID) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    if not product.is_active:
        raise ProductUnavailable(product_id)
    return product


def _check_stock(product: Product, quantity: int) -> None:
    if product.stock < quantity:
        raise InsufficientStock(
            product.id,
            requested=quantity,
            available=product.stock,
            detail="Insufficient stock",
        )


async def get_or_create_cart(db: AsyncSession, user_id: str) -> Cart:
    """Get the user's cart (items and products loaded), creating it if needed."""
    query = (
        select(Cart)
        .where(Cart.user_id == user_id)
        .options(selectinload(Cart.items).selectinload(CartItem.product))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    cart = result.scalar_one_or_none()
    if cart is not None:
        return cart

    cart = Cart(user_id=user_id)
    db.add(cart)
    await db.commit()

    result = await db.execute(query)
    return result.scalar_one()


async def add_item(
    db: AsyncSession, user_id: str, product_id: uuid.UUID, quantity: int
) -> CartItem:
    """Add a product, merging with an existing line for the same product."""
    _validate_quantity(quantity)
    product = await _load_product(db, product_id)
    _check_stock(product, quantity)

    cart = await get_or_create_cart(db, user_id)
    item = next((i for i in cart.items if i.product_id == product_id), None)

    if item is not None:
        new_quantity = item.quantity + quantity
        _validate_quantity(new_quantity)
        _check_stock(product, new_quantity)
        item.quantity = new_quantity
        item.price = product.price
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=product.id,
            quantity=quantity,
            price=product.price,
        )
        db.add(item)

    await db.commit()
    await db.refresh(item, ["product"])
    logger.info("Cart %s: %s x%d", cart.id, product.sku, item.quantity)
    return item


async def _get_owned_item(
    db: AsyncSession, user_id: str, item_id: uuid.UUID
) -> CartItem:
    result = await db.execute(
        select(CartItem)
        .join(Cart, Cart.id == CartItem.cart_id)
        .where(CartItem.id == item_id, Cart.user_id == user_id)
        .options(selectinload(CartItem.product))
    )
    item = result.scalar_one_or_none()
    if item is None:
        raise CartItemNotFound()
    return item


async def update_item(
    db: AsyncSession, user_id: str, item_id: uuid.UUID, quantity: int
) -> CartItem:
    """Set an item's quantity and refresh its price snapshot."""
    _validate_quantity(quantity)
    item = await _get_owned_item(db, user_id, item_id)
    product = await _load_product(db, item.product_id)
    _check_stock(product, quantity)

    item.quantity = quantity
    item.price = product.price
    await db.commit()
    await db.refresh(item, ["product"])
    return item


async def remove_item(db: AsyncSession, user_id: str, item_id: uuid.UUID) -> None:
    item = await _get_owned_item(db, user_id, item_id)
    await db.delete(item)
    await db.commit()


async def clear_cart(db: AsyncSession, user_id: str) -> int:
    """Remove every item from the user's cart. Returns the number removed."""
    cart = await get_or_create_cart(db, user_id)
    removed = len(cart.items)
    cart.items.clear()
    await db.commit()
    return removed


def cart_totals(cart: Cart) -> dict:
    subtotal: Decimal = ZERO
    item_count = 0
    for item in cart.items:
        subtotal += to_money(item.price) * item.quantity
        item_count += item.quantity
    return {
        "item_count": item_count,
        "subtotal": to_money(subtotal),
    }
