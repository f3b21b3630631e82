"""Inventory ledger: locked stock reservation, release and restock.

Every stock change takes a ``SELECT ... FOR UPDATE`` on the product row and
writes an ``InventoryMovement``. Nothing here commits; the caller's unit of
work commits or rolls back. Callers touching several products lock them in
ascending product-id order.
"""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.store_service.errors import (
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
)
from services.store_service.models import (
    InventoryMovement,
    InventoryMovementType,
    Product,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _lock_product(db: AsyncSession, product_id: uuid.UUID) -> Optional[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _record_movement(
    db: AsyncSession,
    product: Product,
    movement_type: InventoryMovementType,
    quantity: int,
    *,
    reference_type: Optional[str],
    reference_id: Optional[str],
    performed_by: Optional[str],
    notes: Optional[str] = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        stock_after=product.stock,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=performed_by,
        notes=notes,
    )
    db.add(movement)
    return movement


async def reserve(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    performed_by: Optional[str] = None,
) -> int:
    """Decrement stock by ``quantity`` and return the new stock level.

    Raises:
        ProductNotFound: the product does not exist.
        InsufficientStock: the product is inactive or has fewer than ``quantity`` units.
    """
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be positive")

    product = await _lock_product(db, product_id)
    if product is None:
        raise ProductNotFound(product_id)

    if not product.is_active:
        raise InsufficientStock(
            product_id,
            requested=quantity,
            available=0,
            detail=f"{product.name} is no longer available",
        )
    if product.stock < quantity:
        logger.info(
            "Stock reservation rejected for %s: requested=%d available=%d",
            product.sku,
            quantity,
            product.stock,
        )
        raise InsufficientStock(
            product_id,
            requested=quantity,
            available=product.stock,
            detail=f"Only {product.stock} left in stock for {product.name}",
        )

    product.stock -= quantity
    _record_movement(
        db,
        product,
        InventoryMovementType.RESERVATION,
        -quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=performed_by,
    )
    await db.flush()
    return product.stock


async def restore(
    db: AsyncSession,
    product_id: Optional[uuid.UUID],
    quantity: int,
    *,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    performed_by: Optional[str] = None,
) -> Optional[int]:
    """Return ``quantity`` units to stock.

    Returns the new stock level, or None when the product no longer exists
    (order items keep only a weak reference to their product).
    """
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be positive")
    if product_id is None:
        return None

    product = await _lock_product(db, product_id)
    if product is None:
        logger.warning(
            "Skipping stock release for deleted product %s (qty=%d, ref=%s)",
            product_id,
            quantity,
            reference_id,
        )
        return None

    product.stock += quantity
    _record_movement(
        db,
        product,
        InventoryMovementType.RELEASE,
        quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=performed_by,
    )
    await db.flush()
    return product.stock


async def restock(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    performed_by: str,
    notes: Optional[str] = None,
) -> int:
    """Admin restock: add ``quantity`` units to a product."""
    if quantity <= 0:
        raise InvalidQuantity("Restock quantity must be positive")

    product = await _lock_product(db, product_id)
    if product is None:
        raise ProductNotFound(product_id)

    product.stock += quantity
    _record_movement(
        db,
        product,
        InventoryMovementType.RESTOCK,
        quantity,
        reference_type="manual",
        reference_id=None,
        performed_by=performed_by,
        notes=notes,
    )
    await db.flush()
    logger.info(
        "Restocked %s by %d (stock=%d) by %s",
        product.sku,
        quantity,
        product.stock,
        performed_by,
    )
    return product.stock
