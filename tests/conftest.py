"""
Shared fixtures: a per-test SQLite file database behind the same Database
gateway the app uses, a TestClient bound to it, and small factories for
users, catalog entries and carts.
"""

import hashlib
import hmac
import json
import os
import time
from decimal import Decimal

# config.settings exits without these, so they must be set before any app import
os.environ.setdefault("DATABASE_URL", "sqlite:///./storefront-test-unused.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["TAX_RATE"] = "0"
os.environ["SHIPPING_FLAT_RATE"] = "0"

import pytest
from fastapi.testclient import TestClient

from config.database import Database
from common.security import hash_password, create_token
from main import create_app
from modules.user.models import User, UserRole
from modules.catalog.models import Product, ProductVariant, Category, Brand
from modules.cart.models import Cart, CartItem, CartStatus
from modules.payment.gateways import GatewaySession, GatewaySessionResult, register_gateway
from modules.payment.gateways.stripe_gateway import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "password123"


# ==========================================
# Fake gateway
# ==========================================

class FakeGateway(StripeGateway):
    """Stripe gateway without network calls. Signature checks stay real."""
    name = "fake"

    def __init__(self):
        self.created = []
        self.sessions = {}

    def create_checkout_session(self, req):
        session = GatewaySession(
            id=f"cs_test_{len(self.created) + 1}",
            url=f"https://checkout.example.test/pay/{len(self.created) + 1}",
            status="open",
            payment_status="unpaid",
            customer_email=req.customer_email,
            amount_total=sum(li.unit_amount * li.quantity for li in req.line_items),
            currency=req.currency,
            metadata=dict(req.metadata),
        )
        self.created.append(req)
        self.sessions[session.id] = session
        return GatewaySessionResult(success=True, session=session)

    def retrieve_session(self, session_id):
        session = self.sessions.get(session_id)
        if session is None:
            return GatewaySessionResult(success=False, error_message="Checkout session not found.", not_found=True)
        return GatewaySessionResult(success=True, session=session)


@pytest.fixture
def fake_gateway(monkeypatch):
    gateway = FakeGateway()
    register_gateway(gateway)
    from config import settings
    monkeypatch.setattr(settings, "PAYMENT_GATEWAY", "fake")
    return gateway


# ==========================================
# Database / app
# ==========================================

@pytest.fixture
def database(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'storefront.db'}")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def client(database):
    with TestClient(create_app(database)) as c:
        yield c


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


# ==========================================
# Factories
# ==========================================

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.USER, email=None, is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(PASSWORD),
            first_name="Test",
            last_name=f"User{counter['n']}",
            role=role.value,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture
def make_variant(db):
    counter = {"n": 0}

    def _make(price="10.00", stock=5, size="M", product=None):
        counter["n"] += 1
        n = counter["n"]
        if product is None:
            product = Product(
                name=f"Product {n}",
                slug=f"product-{n}",
                price=Decimal(price),
            )
            db.add(product)
            db.flush()
        variant = ProductVariant(
            product_id=product.id,
            sku=f"SKU-{n}-{size}",
            title=f"Product {n} - {size}",
            size=size,
            stock=stock,
            price=Decimal(price),
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def make_cart(db):
    """Build an ACTIVE cart directly: items is a list of (variant, quantity)."""

    def _make(user, items):
        cart = Cart(user_id=user.id, status=CartStatus.ACTIVE.value, total_price=Decimal("0.00"))
        db.add(cart)
        db.flush()
        total = Decimal("0.00")
        for variant, quantity in items:
            db.add(CartItem(
                cart_id=cart.id,
                product_id=variant.product_id,
                variant_id=variant.id,
                quantity=quantity,
                item_price=variant.price,
            ))
            total += variant.price * quantity
        cart.total_price = total
        db.commit()
        return cart

    return _make


# ==========================================
# Webhooks
# ==========================================

def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Stripe-Signature header value: t=<ts>,v1=HMAC_SHA256(secret, '<ts>.<payload>')."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def completed_event(session_id: str, user_id: int, cart_id: int, amount_total: int = None,
                    event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "status": "complete",
                "payment_status": "paid",
                "amount_total": amount_total,
                "currency": "eur",
                "payment_intent": f"pi_{session_id}",
                "payment_method_types": ["card"],
                "customer_details": {"email": "buyer@example.com"},
                "metadata": {"user_id": str(user_id), "cart_id": str(cart_id)},
            },
        },
    })


def post_webhook(client, payload: str, signature: str = None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/payment/webhook", content=payload.encode("utf-8"), headers=headers)
