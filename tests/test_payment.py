from decimal import Decimal

from fastapi.testclient import TestClient

from conftest import auth_headers, sign_payload, completed_event, post_webhook
from modules.cart.models import Cart, CartItem, CartStatus
from modules.catalog.models import ProductVariant
from modules.order.models import Order, OrderLineItem, OrderTransaction
from modules.payment.gateways import GatewaySession
from modules.payment.service import payment_service
from modules.order.service import order_service
from main import create_app


def _counts(db):
    db.expire_all()
    return (
        db.query(Order).count(),
        db.query(OrderLineItem).count(),
        db.query(OrderTransaction).count(),
    )


# ==========================================
# Checkout session
# ==========================================

def test_checkout_session_metadata_and_amounts(client, fake_gateway, make_user, make_variant, make_cart):
    user = make_user()
    variant = make_variant(price="12.50", stock=5)
    cart = make_cart(user, [(variant, 2)])

    resp = client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=auth_headers(user))
    assert resp.status_code == 200
    assert resp.json() == {"sessionId": "cs_test_1", "url": "https://checkout.example.test/pay/1"}

    req = fake_gateway.created[0]
    assert req.metadata == {"user_id": str(user.id), "cart_id": str(cart.id)}
    assert [(li.unit_amount, li.quantity) for li in req.line_items] == [(1250, 2)]
    assert req.currency == "eur"
    assert req.success_url.endswith("/checkout/success?session_id={CHECKOUT_SESSION_ID}")


def test_checkout_session_writes_nothing(client, db, fake_gateway, make_user, make_variant, make_cart):
    user = make_user()
    variant = make_variant(stock=5)
    cart = make_cart(user, [(variant, 2)])
    client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=auth_headers(user))

    assert _counts(db) == (0, 0, 0)
    assert db.query(Cart).filter(Cart.id == cart.id).one().status == CartStatus.ACTIVE.value
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 5


def test_checkout_session_for_foreign_cart_is_403(client, fake_gateway, make_user, make_variant, make_cart):
    owner = make_user()
    other = make_user()
    cart = make_cart(owner, [(make_variant(), 1)])
    resp = client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=auth_headers(other))
    assert resp.status_code == 403
    assert fake_gateway.created == []


def test_checkout_session_empty_cart_is_400(client, fake_gateway, make_user, make_cart):
    user = make_user()
    cart = make_cart(user, [])
    resp = client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=auth_headers(user))
    assert resp.status_code == 400


def test_session_status_reports_settled_order(client, fake_gateway, make_user, make_variant, make_cart):
    user = make_user()
    cart = make_cart(user, [(make_variant(price="10.00", stock=5), 2)])
    headers = auth_headers(user)
    session_id = client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=headers).json()["sessionId"]

    resp = client.get(f"/payment/session/{session_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["order"] is None
    assert resp.json()["amount_total"] == "20.00"

    payload = completed_event(session_id, user.id, cart.id, amount_total=2000)
    assert post_webhook(client, payload, sign_payload(payload)).status_code == 200

    resp = client.get(f"/payment/session/{session_id}", headers=headers)
    assert resp.json()["order"]["order_number"].startswith("ORD-")

    stranger = make_user()
    assert client.get(f"/payment/session/{session_id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get("/payment/session/cs_missing", headers=headers).status_code == 404


# ==========================================
# Webhook settlement
# ==========================================

def test_webhook_rejects_bad_signature_without_writes(client, db, fake_gateway, make_user, make_variant, make_cart):
    user = make_user()
    variant = make_variant(stock=5)
    cart = make_cart(user, [(variant, 2)])
    payload = completed_event("cs_forged", user.id, cart.id, amount_total=2000)

    resp = post_webhook(client, payload, sign_payload(payload, secret="whsec_wrong"))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Webhook Error")

    resp = post_webhook(client, payload)
    assert resp.status_code == 400

    # Body altered after signing
    signature = sign_payload(payload)
    resp = post_webhook(client, payload.replace("cs_forged", "cs_forgeD"), signature)
    assert resp.status_code == 400

    assert _counts(db) == (0, 0, 0)
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 5
    assert db.query(Cart).filter(Cart.id == cart.id).one().status == CartStatus.ACTIVE.value


def test_webhook_settles_once(client, db, fake_gateway, make_user, make_variant, make_cart):
    user = make_user()
    variant = make_variant(price="10.00", stock=5)
    cart = make_cart(user, [(variant, 2)])
    payload = completed_event("cs_paid_1", user.id, cart.id, amount_total=2000)

    for _ in range(2):
        resp = post_webhook(client, payload, sign_payload(payload))
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    assert _counts(db) == (1, 1, 1)
    order = db.query(Order).one()
    assert order.status == "processing"
    assert order.financial_status == "paid"
    assert order.total_amount == Decimal("20.00")

    tx = db.query(OrderTransaction).one()
    assert tx.gateway_session_id == "cs_paid_1"
    assert tx.gateway_id == "pi_cs_paid_1"
    assert tx.amount == Decimal("20.00")
    assert tx.status == "succeeded"

    cart = db.query(Cart).filter(Cart.id == cart.id).one()
    assert cart.status == CartStatus.CHECKED_OUT.value
    assert db.query(CartItem).filter(CartItem.cart_id == cart.id).count() == 0
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 3


def test_webhook_stock_shortfall_aborts(client, db, fake_gateway, make_user, make_variant, make_cart, caplog):
    user = make_user()
    variant = make_variant(price="10.00", stock=1)
    cart = make_cart(user, [(variant, 2)])
    payload = completed_event("cs_short", user.id, cart.id, amount_total=2000)

    with caplog.at_level("CRITICAL", logger="storefront.payment"):
        resp = post_webhook(client, payload, sign_payload(payload))
    assert resp.status_code == 200
    assert any(r.levelname == "CRITICAL" and "cs_short" in r.getMessage() for r in caplog.records)

    assert _counts(db) == (0, 0, 0)
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 1
    cart = db.query(Cart).filter(Cart.id == cart.id).one()
    assert cart.status == CartStatus.ACTIVE.value
    assert db.query(CartItem).filter(CartItem.cart_id == cart.id).count() == 1


def test_ignored_event_types_are_acknowledged(client, db, fake_gateway):
    payload = '{"id": "evt_x", "type": "checkout.session.expired", "data": {"object": {"id": "cs_old"}}}'
    resp = post_webhook(client, payload, sign_payload(payload))
    assert resp.status_code == 200
    assert _counts(db) == (0, 0, 0)


def test_repeated_settlements_never_oversell(database, db, make_user, make_variant, make_cart):
    """Stock S=5, q=2 per buyer: floor(5/2) = 2 settlements succeed, stock ends at 1."""
    variant = make_variant(price="10.00", stock=5)
    carts = []
    for _ in range(4):
        buyer = make_user()
        carts.append((buyer, make_cart(buyer, [(variant, 2)])))

    settled = 0
    for n, (buyer, cart) in enumerate(carts):
        session = GatewaySession(
            id=f"cs_race_{n}",
            payment_status="paid",
            amount_total=2000,
            currency="eur",
            payment_intent=f"pi_race_{n}",
            metadata={"user_id": str(buyer.id), "cart_id": str(cart.id)},
        )
        s = database.session()
        try:
            if payment_service.settle_checkout_session(s, session, event_id=f"evt_{n}") is not None:
                settled += 1
        finally:
            s.close()

    assert settled == 2
    db.expire_all()
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 1
    assert db.query(Order).count() == 2


def test_settlement_with_foreign_cart_is_skipped(database, db, make_user, make_variant, make_cart):
    owner = make_user()
    attacker = make_user()
    cart = make_cart(owner, [(make_variant(stock=5), 1)])
    session = GatewaySession(
        id="cs_mismatch",
        amount_total=1000,
        metadata={"user_id": str(attacker.id), "cart_id": str(cart.id)},
    )
    s = database.session()
    try:
        assert payment_service.settle_checkout_session(s, session) is None
    finally:
        s.close()
    assert _counts(db) == (0, 0, 0)


def _critical(caplog, session_id):
    return [
        r.getMessage() for r in caplog.records
        if r.levelname == "CRITICAL" and session_id in r.getMessage()
    ]


def test_cart_grown_after_session_is_not_settled(client, db, fake_gateway, make_user, make_variant, make_cart,
                                                 caplog):
    user = make_user()
    shirt = make_variant(price="10.00", stock=5)
    coat = make_variant(price="500.00", stock=5)
    cart = make_cart(user, [(shirt, 2)])
    headers = auth_headers(user)
    session_id = client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=headers).json()["sessionId"]

    resp = client.post("/cart/items", json={"productId": coat.product_id, "variantId": coat.id, "quantity": 1},
                       headers=headers)
    assert resp.status_code == 201

    payload = completed_event(session_id, user.id, cart.id, amount_total=2000)
    with caplog.at_level("CRITICAL", logger="storefront.payment"):
        resp = post_webhook(client, payload, sign_payload(payload))
    assert resp.status_code == 200
    messages = _critical(caplog, session_id)
    assert messages and "520.00" in messages[0]

    assert _counts(db) == (0, 0, 0)
    assert db.query(ProductVariant).filter(ProductVariant.id == shirt.id).one().stock == 5
    assert db.query(ProductVariant).filter(ProductVariant.id == coat.id).one().stock == 5
    cart = db.query(Cart).filter(Cart.id == cart.id).one()
    assert cart.status == CartStatus.ACTIVE.value
    assert db.query(CartItem).filter(CartItem.cart_id == cart.id).count() == 2


def test_payment_after_direct_checkout_raises_alert(client, db, fake_gateway, make_user, make_variant, make_cart,
                                                    caplog):
    user = make_user()
    cart = make_cart(user, [(make_variant(price="10.00", stock=5), 2)])
    headers = auth_headers(user)
    session_id = client.post("/payment/checkout-session", json={"cartId": cart.id}, headers=headers).json()["sessionId"]
    assert client.post("/orders", json={"shippingAddress": "Rua Augusta 100, Lisboa", "paymentMethod": "card"},
                       headers=headers).status_code == 201

    payload = completed_event(session_id, user.id, cart.id, amount_total=2000)
    with caplog.at_level("CRITICAL", logger="storefront.payment"):
        resp = post_webhook(client, payload, sign_payload(payload))
    assert resp.status_code == 200
    messages = _critical(caplog, session_id)
    assert messages and "already converted" in messages[0]

    # Only the direct-checkout order exists
    assert _counts(db) == (1, 1, 0)


def test_webhook_for_missing_cart_is_acknowledged(client, db, fake_gateway, make_user, caplog):
    user = make_user()
    payload = completed_event("cs_no_cart", user.id, 9999, amount_total=1000)
    with caplog.at_level("CRITICAL", logger="storefront.payment"):
        resp = post_webhook(client, payload, sign_payload(payload))
    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert _critical(caplog, "cs_no_cart")
    assert _counts(db) == (0, 0, 0)


def test_unexpected_settlement_error_is_500(database, db, fake_gateway, make_user, make_variant, make_cart,
                                            monkeypatch):
    user = make_user()
    variant = make_variant(price="10.00", stock=5)
    cart = make_cart(user, [(variant, 2)])

    def explode(*args, **kwargs):
        raise RuntimeError("order builder unavailable")

    monkeypatch.setattr(order_service, "build_order", explode)

    payload = completed_event("cs_boom", user.id, cart.id, amount_total=2000)
    with TestClient(create_app(database), raise_server_exceptions=False) as c:
        resp = post_webhook(c, payload, sign_payload(payload))
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}

    assert _counts(db) == (0, 0, 0)
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 5
    assert db.query(Cart).filter(Cart.id == cart.id).one().status == CartStatus.ACTIVE.value
