"""Shared fixtures for the store test suite.

Every test gets a fresh in-memory SQLite database. API tests drive the real
FastAPI app through ``httpx.AsyncClient`` with the database, auth, shipping
estimator and Midtrans client swapped out via ``dependency_overrides``.
"""

import hashlib
import os
import uuid
from contextlib import contextmanager
from typing import AsyncGenerator, Optional

# Settings are read at import time by libs.db.config and the rate limiter
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["MIDTRANS_SERVER_KEY"] = "test-server-key"
os.environ.pop("SHIPPING_RATE_API_URL", None)

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser, Role
from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.session import get_async_db
from services.store_service import models as _store_models  # noqa: F401
from services.store_service.app.main import app
from services.store_service.midtrans_client import MidtransClient, get_midtrans_client
from services.store_service.services.shipping import (
    ShippingEstimator,
    get_shipping_estimator,
)

get_settings.cache_clear()
settings = get_settings()

TEST_SERVER_KEY = "test-server-key"
SNAP_TOKEN = "snap-token-123"
SNAP_REDIRECT_URL = "https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-token-123"


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def make_customer_user(user_id: Optional[str] = None, **overrides) -> AuthUser:
    defaults = {
        "sub": user_id or f"customer-{uuid.uuid4().hex[:8]}",
        "email": "customer@example.com",
        "name": "Test Customer",
        "phone": "081234567890",
        "role": Role.CUSTOMER,
    }
    defaults.update(overrides)
    return AuthUser(**defaults)


def make_admin_user(user_id: Optional[str] = None, **overrides) -> AuthUser:
    overrides.setdefault("email", "admin@example.com")
    overrides.setdefault("name", "Store Admin")
    overrides.setdefault("role", Role.ADMIN)
    return make_customer_user(user_id or f"admin-{uuid.uuid4().hex[:8]}", **overrides)


@contextmanager
def override_auth(target_app, user: AuthUser):
    """Temporarily authenticate every request to ``target_app`` as ``user``."""
    previous = target_app.dependency_overrides.get(get_current_user)
    target_app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield user
    finally:
        if previous is None:
            target_app.dependency_overrides.pop(get_current_user, None)
        else:
            target_app.dependency_overrides[get_current_user] = previous


# ---------------------------------------------------------------------------
# Midtrans helpers
# ---------------------------------------------------------------------------


def sign_notification(
    order_id: str,
    status_code: str,
    gross_amount: str,
    server_key: str = TEST_SERVER_KEY,
) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode()).hexdigest()


def make_notification(
    order_id: str,
    gross_amount: str,
    transaction_status: str = "settlement",
    status_code: str = "200",
    **overrides,
) -> dict:
    """A signed Midtrans HTTP notification body."""
    payload = {
        "order_id": order_id,
        "transaction_id": str(uuid.uuid4()),
        "transaction_status": transaction_status,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "payment_type": "bank_transfer",
        "fraud_status": "accept",
        "signature_key": sign_notification(order_id, status_code, gross_amount),
    }
    payload.update(overrides)
    return payload


class SnapRecorder:
    """httpx.MockTransport handler that records Snap requests."""

    def __init__(self, status_code: int = 201, body: Optional[dict] = None):
        self.status_code = status_code
        self.body = body if body is not None else {
            "token": SNAP_TOKEN,
            "redirect_url": SNAP_REDIRECT_URL,
        }
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same
    database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def concurrent_session_factory(tmp_path):
    """
    File-backed database where every session gets its own connection.

    SQLite ignores ``FOR UPDATE``; ``BEGIN IMMEDIATE`` takes the write lock
    when a transaction starts, so concurrent units of work serialize the way
    row locks make them serialize on Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------


@pytest.fixture
def snap_recorder() -> SnapRecorder:
    return SnapRecorder()


@pytest.fixture
def midtrans_client(snap_recorder) -> MidtransClient:
    return MidtransClient(
        server_key=TEST_SERVER_KEY,
        settings=settings,
        transport=httpx.MockTransport(snap_recorder),
    )


@pytest.fixture
def shipping_estimator() -> ShippingEstimator:
    """Static rate table only; no external rate API is configured."""
    return ShippingEstimator(
        settings=settings.model_copy(update={"SHIPPING_RATE_API_URL": None})
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@pytest.fixture
def customer() -> AuthUser:
    return make_customer_user("customer-1")


@pytest.fixture
def admin() -> AuthUser:
    return make_admin_user("admin-1")


@pytest_asyncio.fixture
async def client(
    db_session, customer, midtrans_client, shipping_estimator
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async client against the store app, authenticated as ``customer``.

    Use ``override_auth(app, user)`` to act as someone else.
    """
    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_current_user] = lambda: customer
    app.dependency_overrides[get_midtrans_client] = lambda: midtrans_client
    app.dependency_overrides[get_shipping_estimator] = lambda: shipping_estimator

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client

    app.dependency_overrides.clear()
