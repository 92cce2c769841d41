"""
Pytest configuration and shared fixtures.

Provides an async HTTP client bound to the FastAPI app, a file-backed
SQLite database per test, a fake payment provider and helpers to sign
notifications the way Mercado Pago does.
"""

import os

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MP_WEBHOOK_SECRET", "TEST_WEBHOOK_SECRET_123")
os.environ.setdefault("MP_ACCESS_TOKEN", "TEST-ACCESS-TOKEN")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import json
from decimal import Decimal
from typing import Any, AsyncGenerator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.core.config import settings
from storefront.core.database import Base, get_db, get_session_factory
from storefront.core.exceptions import UpstreamDataError
from storefront.main import app
from storefront.models.shop import Order, OrderItem, OrderStatus, Product
from storefront.modules.payments.provider import PaymentProviderConfig, ProviderPayment
from storefront.modules.payments.signature import SignatureVerifier, build_manifest, sign_manifest
from storefront.modules.webhooks.dispatcher import WebhookDispatcher

WEBHOOK_SECRET = settings.mp_webhook_secret
ADMIN_HEADERS = {"X-Admin-Key": settings.admin_api_key}


# ── Fakes ───────────────────────────────────────────────────────────


class FakePaymentProvider:
    """In-memory stand-in for the Mercado Pago client."""

    def __init__(self) -> None:
        self.config = PaymentProviderConfig(access_token="fake")
        self.payments: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.error: Exception | None = None

    def add_payment(self, payment_id: str, **data: Any) -> None:
        self.payments[payment_id] = data

    async def get_payment(self, payment_id: str) -> ProviderPayment:
        self.calls.append(payment_id)
        if self.error:
            raise self.error
        if payment_id not in self.payments:
            raise UpstreamDataError(f"Unknown payment {payment_id}")
        return ProviderPayment.from_response(payment_id, self.payments[payment_id])


class RecordingTransport(httpx.AsyncBaseTransport):
    """Captures outbound webhook posts. URLs in ``failing`` answer 500."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.failing: set[str] = set()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) in self.failing:
            return httpx.Response(500)
        return httpx.Response(200, json={"ok": True})


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory on a fresh SQLite file so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── App Fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def outbound() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
async def client(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    provider: FakePaymentProvider,
    outbound: RecordingTransport,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Async client for the app.

    The ASGI transport does not run the lifespan, so the collaborators it
    would create are installed on app.state here.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    dispatcher = WebhookDispatcher(transport=outbound)
    app.state.payment_provider = provider
    app.state.signature_verifier = SignatureVerifier(WEBHOOK_SECRET)
    app.state.webhook_dispatcher = dispatcher

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await dispatcher.close()
    app.dependency_overrides.clear()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
async def product(db_session: AsyncSession) -> Product:
    """Product with 4 units left after one was reserved at checkout."""
    item = Product(
        sku="WH-001",
        name="Prod Webhook Test",
        slug="prod-webhook-test-wh-001",
        price=Decimal("50.00"),
        image_url="wh.jpg",
        stock_quantity=4,
    )
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest.fixture
def make_order(db_session: AsyncSession, product: Product):
    """Factory creating an order for one unit of ``product``."""

    async def _make(
        status: OrderStatus = OrderStatus.PENDING_PAYMENT,
        order_id: str | None = None,
        quantity: int = 1,
    ) -> Order:
        order = Order(
            order_status=status,
            customer_email="webhook@test.com",
            payment_method="mercadopago",
            items_price=product.price * quantity,
            total_price=product.price * quantity,
        )
        if order_id:
            order.id = order_id
        order.items.append(
            OrderItem(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                unit_price=product.price,
                image_url=product.image_url,
            )
        )
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


# ── Signing Helpers ───────────────────────────────────────────────────


def signature_header(
    data_id: str,
    timestamp: str = "1700000000",
    secret: str = WEBHOOK_SECRET,
    request_id: str | None = None,
) -> str:
    """x-signature value as Mercado Pago would send it."""
    manifest = build_manifest(data_id, timestamp, request_id)
    return f"ts={timestamp},v1={sign_manifest(manifest, secret)}"


def notification_body(payment_id: str, event_type: str = "payment") -> bytes:
    return json.dumps(
        {"type": event_type, "action": "payment.updated", "data": {"id": payment_id}}
    ).encode()


@pytest.fixture
def send_notification(client: httpx.AsyncClient):
    """POST a correctly signed notification for ``payment_id``."""

    async def _send(payment_id: str, event_type: str = "payment") -> httpx.Response:
        return await client.post(
            "/api/v1/webhooks/handler",
            params={"data.id": payment_id, "type": event_type},
            content=notification_body(payment_id, event_type),
            headers={
                "Content-Type": "application/json",
                "x-signature": signature_header(payment_id),
            },
        )

    return _send
