import hashlib
import hmac
import json
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app import models  # noqa: F401  registers every table
from app.config import Settings
from app.context import AppContext, get_context
from app.database import get_session
from app.errors import NotFound, PersistenceFailure, UpstreamProviderFailure
from app.main import app as fastapi_app
from app.models import Affiliate, Product
from app.services.dodo_client import CheckoutSession
from app.services.purchase_ledger import PurchaseFields, record_purchase
from app.services.r2_client import StoredFile


class FakeStorage:
    """In-memory stand-in for the R2 bucket."""

    def __init__(self):
        self.files = {}
        self.fail = False
        self.on_fetch = None
        self.fetches = []

    def put(self, key, content, content_type="application/pdf"):
        self.files[key] = (content, content_type)

    def get_file(self, key):
        self.fetches.append(key)
        if self.fail:
            raise PersistenceFailure()
        if self.on_fetch:
            self.on_fetch(key)
        if key not in self.files:
            raise NotFound("File not found")
        content, content_type = self.files[key]
        return StoredFile(key=key, content=content, content_type=content_type)

    def presigned_url(self, key, expires=900):
        if self.fail:
            raise PersistenceFailure()
        return f"https://files.example.test/{key}?expires={expires}"


class FakeCheckoutProvider:
    def __init__(self):
        self.calls = []
        self.fail = False

    def create_checkout(self, product_external_id, referral_code=None):
        if self.fail:
            raise UpstreamProviderFailure()
        self.calls.append((product_external_id, referral_code))
        checkout_id = f"cks_test_{len(self.calls)}"
        return CheckoutSession(
            checkout_id=checkout_id,
            checkout_url=f"https://checkout.example.test/{checkout_id}",
        )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL="sqlite://",
        SITE_URL="https://shop.example.test",
        DODO_WEBHOOK_SECRET="",
        PADDLE_WEBHOOK_SECRET="",
        DODO_AMOUNT_UNIT="infer",
        PADDLE_AMOUNT_UNIT="minor",
        DOWNLOAD_TOKEN_TTL_HOURS=24,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def checkout_provider():
    return FakeCheckoutProvider()


@pytest.fixture
def ctx(settings, engine, storage, checkout_provider):
    return AppContext(
        settings=settings,
        engine=engine,
        storage=storage,
        checkout_provider=checkout_provider,
    )


@pytest.fixture
def client(ctx, session):
    def _session_override():
        yield session

    fastapi_app.dependency_overrides[get_context] = lambda: ctx
    fastapi_app.dependency_overrides[get_session] = _session_override
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def product(session, storage):
    product = Product(
        name="AI Prompt Pack",
        external_id="pdt_test_1",
        provider="dodo",
        file_path="products/ai-prompt-pack.pdf",
        price=10.0,
        currency="USD",
        affiliate_rate=0.5,
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    storage.put(product.file_path, b"%PDF-1.4 prompt pack")
    return product


@pytest.fixture
def affiliate(session):
    affiliate = Affiliate(code="AFF1", name="Ana Affiliate", email="ana@example.com")
    session.add(affiliate)
    session.commit()
    session.refresh(affiliate)
    return affiliate


@pytest.fixture
def purchase_id(session, product):
    return record_purchase(
        session,
        "cks_1",
        PurchaseFields(
            email="buyer@example.com",
            provider="dodo",
            order_id="pay_1",
            product_id=product.id,
            amount=10,
        ),
    )


def make_dodo_event(
    checkout_id: str = "cks_1",
    payment_id: str = "pay_1",
    product_id: str = "pdt_test_1",
    email: Optional[str] = "buyer@example.com",
    amount=1000,
    referral: Optional[str] = None,
    event_type: str = "payment.succeeded",
    status: Optional[str] = "succeeded",
):
    data = {
        "payment_id": payment_id,
        "checkout_session_id": checkout_id,
        "product_cart": [{"product_id": product_id, "quantity": 1}],
        "settlement_amount": amount,
        "settlement_currency": "USD",
        "metadata": {},
    }
    if email is not None:
        data["customer"] = {"email": email, "name": "Buyer"}
    if status is not None:
        data["status"] = status
    if referral is not None:
        data["metadata"]["referral_code"] = referral
    return {"type": event_type, "data": data}


def make_paddle_event(
    transaction_id: str = "txn_1",
    product_id: str = "pdt_test_1",
    email: str = "buyer@example.com",
    total: str = "1000",
    referral: Optional[str] = None,
    event_type: str = "transaction.completed",
):
    data = {
        "id": transaction_id,
        "status": "completed",
        "currency_code": "usd",
        "customer": {"email": email},
        "items": [{"price": {"id": "pri_1", "product_id": product_id}, "quantity": 1}],
        "details": {"totals": {"grand_total": total, "currency_code": "USD"}},
        "payments": [{"payment_attempt_id": "pat_1", "status": "captured"}],
        "custom_data": {"ref": referral} if referral else None,
    }
    return {"event_type": event_type, "data": data}


def sign(secret: str, raw: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def post_webhook(client, provider, body, secret=None, header=None):
    raw = json.dumps(body).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if secret:
        headers[header or ("paddle-signature" if provider == "paddle" else "webhook-signature")] = sign(secret, raw)
    return client.post(f"/webhooks/{provider}", content=raw, headers=headers)


@pytest.fixture
def dodo_event():
    return make_dodo_event


@pytest.fixture
def paddle_event():
    return make_paddle_event


@pytest.fixture
def send_webhook(client):
    def _send(provider, body, secret=None, header=None):
        return post_webhook(client, provider, body, secret=secret, header=header)
    return _send
