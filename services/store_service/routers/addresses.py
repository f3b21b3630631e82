"""Saved shipping addresses for the current user."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import require_permission
from libs.auth.models import AuthUser
from libs.auth.policy import Action
from libs.db.session import get_async_db
from services.store_service.models import UserAddress
from services.store_service.schemas import (
    UserAddressCreate,
    UserAddressResponse,
    UserAddressUpdate,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/user-addresses", tags=["addresses"])

address_user = require_permission(Action.ADDRESS_MANAGE)


async def get_owned_address(
    db: AsyncSession, user_id: str, address_id: uuid.UUID
) -> UserAddress:
    result = await db.execute(
        select(UserAddress).where(
            UserAddress.id == address_id, UserAddress.user_id == user_id
        )
    )
    address = result.scalar_one_or_none()
    if address is None:
        raise HTTPException(status_code=404, detail="Address not found")
    return address


async def _clear_default(db: AsyncSession, user_id: str) -> None:
    await db.execute(
        update(UserAddress)
        .where(UserAddress.user_id == user_id, UserAddress.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


@router.get("", response_model=list[UserAddressResponse])
async def list_addresses(
    current_user: AuthUser = Depends(address_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List saved addresses, default first."""
    result = await db.execute(
        select(UserAddress)
        .where(UserAddress.user_id == current_user.user_id)
        .order_by(UserAddress.is_default.desc(), UserAddress.created_at.desc())
    )
    return result.scalars().all()


@router.post(
    "", response_model=UserAddressResponse, status_code=status.HTTP_201_CREATED
)
async def create_address(
    payload: UserAddressCreate,
    current_user: AuthUser = Depends(address_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Save a new address. The first address becomes the default."""
    existing = await db.execute(
        select(UserAddress.id).where(UserAddress.user_id == current_user.user_id)
    )
    is_first = existing.first() is None

    if payload.is_default:
        await _clear_default(db, current_user.user_id)

    address = UserAddress(
        user_id=current_user.user_id,
        **payload.model_dump(exclude={"is_default"}),
        is_default=payload.is_default or is_first,
    )
    db.add(address)
    await db.commit()
    await db.refresh(address)
    return address


@router.get("/{address_id}", response_model=UserAddressResponse)
async def get_address(
    address_id: uuid.UUID,
    current_user: AuthUser = Depends(address_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_owned_address(db, current_user.user_id, address_id)


@router.put("/{address_id}", response_model=UserAddressResponse)
async def update_address(
    address_id: uuid.UUID,
    payload: UserAddressUpdate,
    current_user: AuthUser = Depends(address_user),
    db: AsyncSession = Depends(get_async_db),
):
    address = await get_owned_address(db, current_user.user_id, address_id)

    data = payload.model_dump(exclude_unset=True)
    if data.get("is_default"):
        await _clear_default(db, current_user.user_id)
    for field, value in data.items():
        setattr(address, field, value)

    await db.commit()
    await db.refresh(address)
    return address


@router.post("/{address_id}/set-default", response_model=UserAddressResponse)
async def set_default_address(
    address_id: uuid.UUID,
    current_user: AuthUser = Depends(address_user),
    db: AsyncSession = Depends(get_async_db),
):
    address = await get_owned_address(db, current_user.user_id, address_id)
    await _clear_default(db, current_user.user_id)
    address.is_default = True
    await db.commit()
    await db.refresh(address)
    return address


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: uuid.UUID,
    current_user: AuthUser = Depends(address_user),
    db: AsyncSession = Depends(get_async_db),
):
    address = await get_owned_address(db, current_user.user_id, address_id)
    await db.delete(address)
    await db.commit()
