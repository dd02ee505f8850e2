"""Shared test fixtures.

Provides:
- settings: Settings for tests (in-memory SQLite, no Redis, fixed secrets)
- session_factory: async sessions over a fresh in-memory database per test
- provider: AbacatePay stub served through httpx.MockTransport
- app / client: FastAPI app wired with the stub, called through ASGITransport
- products / order: seeded catalog and a pending order
- customer / auth_headers: a registered user and bearer headers for any user id
"""
import json
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from jose import jwt

from storefront.config import Settings
from storefront.core.security import ALGORITHM
from storefront.core.timeutils import utcnow
from storefront.database import build_engine, build_session_factory, create_tables
from storefront.main import create_app
from storefront.models.product import Product
from storefront.models.user import User
from storefront.services.abacatepay import AbacatePayGateway
from storefront.services.order_service import OrderService, order_finalizer
from storefront.services.payment_reconciler import PaymentReconciler
from storefront.services.payment_store import PaymentRecordStore

WEBHOOK_SECRET = "whsec_test"
PIX_PAYLOAD = "00020126580014br.gov.bcb.pix0136123e4567-e12b-12d1-a456-4266554400005204000053039865802BR5913Fulano de Tal6008BRASILIA62070503***63041D3D"


class ProviderStub:
    """Fake AbacatePay API.

    Queued responses are served first; after that every POST /v1/billing
    gets a fresh pending PIX charge with ids ch_1, ch_2, ...
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.queued: list = []

    def billing(self, number: int, **overrides) -> dict:
        body = {
            "id": f"ch_{number}",
            "status": "pending",
            "pix_qr_code_text": PIX_PAYLOAD,
            "expires_at": (utcnow() + timedelta(minutes=15)).isoformat(),
        }
        body.update(overrides)
        return body

    def queue(self, status_code: int = 200, json=None, exc: Exception | None = None):
        self.queued.append((status_code, json, exc))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.queued:
            status_code, body, exc = self.queued.pop(0)
            if exc is not None:
                raise exc
            return httpx.Response(status_code, json=body)
        return httpx.Response(200, json=self.billing(len(self.requests)))

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite://",
        auto_create_tables=False,
        redis_url="",
        secret_key="test-secret-key",
        environment="testing",
        abacatepay_api_key="test-api-key",
        abacatepay_api_url="https://api.abacatepay.test",
        abacatepay_webhook_secret=WEBHOOK_SECRET,
        webhook_base_url="https://shop.test",
    )


@pytest.fixture
async def session_factory(settings):
    """Clean in-memory database per test."""
    engine = build_engine(settings.database_url)
    await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def provider():
    return ProviderStub()


@pytest.fixture
async def provider_client(provider):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as client:
        yield client


@pytest.fixture
def gateway(provider_client, settings):
    return AbacatePayGateway(
        provider_client,
        api_key=settings.abacatepay_api_key,
        api_url=settings.abacatepay_api_url,
        webhook_secret=settings.abacatepay_webhook_secret,
        webhook_base_url=settings.webhook_base_url,
    )


@pytest.fixture
def store(session_factory):
    return PaymentRecordStore(session_factory)


@pytest.fixture
def reconciler(store, session_factory):
    return PaymentReconciler(store, finalize_order=order_finalizer(session_factory))


@pytest.fixture
def app(settings, session_factory, provider_client):
    return create_app(settings, session_factory=session_factory, provider_client=provider_client)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def products(session_factory):
    """Two active products and one inactive."""
    async with session_factory() as db:
        items = [
            Product(name="Sérum Facial", slug="serum-facial", category="rosto", price=Decimal("89.90"), stock_quantity=10),
            Product(name="Máscara Capilar", slug="mascara-capilar", category="cabelo", price=Decimal("45.50")),
            Product(name="Batom Antigo", slug="batom-antigo", category="maquiagem", price=Decimal("20.00"), is_active=False),
        ]
        db.add_all(items)
        await db.commit()
        return [p.id for p in items]


@pytest.fixture
async def order(session_factory, products):
    """Pending anonymous order: 2 x Sérum Facial + 15.00 shipping = 194.80."""
    async with session_factory() as db:
        created = await OrderService(db).create_order(
            items=[{"product_id": products[0], "quantity": 2}],
            shipping={
                "address": "Rua das Flores, 100",
                "city": "São Paulo",
                "state": "SP",
                "postal_code": "01000-000",
            },
            shipping_cost=Decimal("15.00"),
            payment_method="pix",
        )
        return created.id


@pytest.fixture
async def customer(session_factory):
    """Registered customer with a partial profile."""
    async with session_factory() as db:
        user = User(username="ana", full_name="Ana Souza", email="ana@example.com", city="Recife", state="PE")
        db.add(user)
        await db.commit()
        return user.id


@pytest.fixture
def auth_headers(settings):
    """Bearer headers signed the way the external auth service signs them."""

    def make(user_id=42, expires_in=timedelta(hours=1)):
        claims = {"sub": str(user_id), "exp": utcnow() + expires_in}
        token = jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return make
