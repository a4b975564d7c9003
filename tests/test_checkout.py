from decimal import Decimal

import pytest

from conftest import auth_headers
from common.exceptions import NoActiveCartError, EmptyCartError
from modules.cart.models import Cart, CartItem, CartStatus
from modules.catalog.models import ProductVariant
from modules.order.models import Order, OrderLineItem
from modules.order.service import order_service

CHECKOUT_BODY = {"shippingAddress": "Rua Augusta 100, Lisboa", "paymentMethod": "cash_on_delivery"}


def test_checkout_single_item(client, db, make_user, make_variant, make_cart):
    user = make_user()
    variant = make_variant(price="10.00", stock=5)
    cart = make_cart(user, [(variant, 2)])

    resp = client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user))
    assert resp.status_code == 201
    body = resp.json()
    assert body["total"] == "20.00"
    assert body["status"] == "pending"
    assert body["order_number"].startswith("ORD-")

    db.expire_all()
    order = db.query(Order).filter(Order.id == body["order_id"]).one()
    assert order.total_amount == Decimal("20.00")
    assert order.subtotal == Decimal("20.00")
    assert order.financial_status == "pending"
    assert [(li.quantity, li.price, li.total) for li in order.line_items] == [
        (2, Decimal("10.00"), Decimal("20.00")),
    ]

    cart = db.query(Cart).filter(Cart.id == cart.id).one()
    assert cart.status == CartStatus.COMPLETED.value
    assert cart.order_id == order.id
    assert cart.items == []
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 3


def test_checkout_applies_tax_and_shipping(client, db, make_user, make_variant, make_cart, monkeypatch):
    from config import settings
    monkeypatch.setattr(settings, "TAX_RATE", Decimal("0.23"))
    monkeypatch.setattr(settings, "SHIPPING_FLAT_RATE", Decimal("4.99"))

    user = make_user()
    variant = make_variant(price="10.00", stock=5)
    make_cart(user, [(variant, 2)])

    resp = client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user))
    assert resp.status_code == 201
    assert resp.json()["total"] == "29.59"

    db.expire_all()
    order = db.query(Order).one()
    assert order.tax_amount == Decimal("4.60")
    assert order.shipping_amount == Decimal("4.99")


def test_checkout_without_cart_is_400(client, db, make_user):
    user = make_user()
    resp = client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user))
    assert resp.status_code == 400
    assert resp.json()["error"] == "No active cart found to checkout."
    assert db.query(Order).count() == 0


def test_checkout_empty_cart_is_400(client, db, make_user, make_cart):
    user = make_user()
    cart = make_cart(user, [])
    resp = client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Cart is empty")

    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.query(Cart).filter(Cart.id == cart.id).one().status == CartStatus.ACTIVE.value


def test_checkout_twice_second_has_no_cart(client, db, make_user, make_variant, make_cart):
    user = make_user()
    make_cart(user, [(make_variant(stock=5), 1)])
    assert client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user)).status_code == 201
    assert client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user)).status_code == 400
    assert db.query(Order).count() == 1


def test_checkout_insufficient_stock_rolls_back(client, db, make_user, make_variant, make_cart):
    user = make_user()
    plenty = make_variant(price="5.00", stock=10)
    scarce = make_variant(price="7.00", stock=1)
    make_cart(user, [(plenty, 2), (scarce, 2)])

    resp = client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user))
    assert resp.status_code == 400
    assert "Insufficient stock" in resp.json()["error"]

    db.expire_all()
    assert db.query(Order).count() == 0
    # The first line's decrement was rolled back with the rest
    assert db.query(ProductVariant).filter(ProductVariant.id == plenty.id).one().stock == 10
    assert db.query(ProductVariant).filter(ProductVariant.id == scarce.id).one().stock == 1


def test_checkout_is_atomic_when_cart_completion_fails(database, db, make_user, make_variant, make_cart, monkeypatch):
    user = make_user()
    variant = make_variant(price="10.00", stock=5)
    cart = make_cart(user, [(variant, 2)])

    def explode(*args, **kwargs):
        raise RuntimeError("injected failure after line items")

    monkeypatch.setattr(order_service, "convert_cart", explode)

    session = database.session()
    try:
        with pytest.raises(RuntimeError):
            order_service.checkout(session, user, "Rua Augusta 100, Lisboa", "card")
    finally:
        session.close()

    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.query(OrderLineItem).count() == 0
    cart = db.query(Cart).filter(Cart.id == cart.id).one()
    assert cart.status == CartStatus.ACTIVE.value
    assert db.query(CartItem).filter(CartItem.cart_id == cart.id).count() == 1
    assert db.query(ProductVariant).filter(ProductVariant.id == variant.id).one().stock == 5


def test_service_raises_typed_errors(database, make_user, make_cart):
    user = make_user()
    session = database.session()
    try:
        with pytest.raises(NoActiveCartError):
            order_service.checkout(session, user, "Rua Augusta 100", "card")
        make_cart(user, [])
        with pytest.raises(EmptyCartError):
            order_service.checkout(session, user, "Rua Augusta 100", "card")
    finally:
        session.close()


def test_stock_is_deducted_in_variant_order(client, make_user, make_variant, make_cart, monkeypatch):
    user = make_user()
    first = make_variant(price="5.00", stock=5)
    second = make_variant(price="7.00", stock=5)
    # Cart lines in reverse variant order
    make_cart(user, [(second, 1), (first, 1)])

    seen = []
    deduct = order_service.deduct_stock

    def recording(db, item):
        seen.append(item.variant_id)
        return deduct(db, item)

    monkeypatch.setattr(order_service, "deduct_stock", recording)

    assert client.post("/orders", json=CHECKOUT_BODY, headers=auth_headers(user)).status_code == 201
    assert seen == [first.id, second.id]
