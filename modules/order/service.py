"""
Order Module - Service Layer
===============================
Direct checkout, order construction from a cart snapshot (shared with
gateway settlement), atomic stock deduction, order queries and the admin
status workflow.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import desc, asc, or_

from config import settings
from config.database import atomic
from common.exceptions import (
    NoActiveCartError, EmptyCartError, InsufficientStockError,
    NotFoundError, AuthorizationError, ConflictError, BadRequestError,
)
from common.helpers import (
    now_utc, to_money, line_total, sum_lines, money_str,
    generate_unique_order_number,
)
from modules.admin.permissions import is_allowed
from modules.cart.models import Cart, CartItem, CartStatus
from modules.cart.service import cart_service
from modules.catalog.models import ProductVariant
from modules.order.models import (
    Order, OrderLineItem, OrderTransaction,
    OrderStatus, FinancialStatus, FulfillmentStatus, ORDER_STATUS_TRANSITIONS,
)

logger = logging.getLogger("storefront.order")


def compute_totals(subtotal: Decimal) -> dict:
    """subtotal -> {subtotal, tax, shipping, total} using configured rates."""
    subtotal = to_money(subtotal)
    tax = to_money(subtotal * settings.TAX_RATE)
    shipping = to_money(settings.SHIPPING_FLAT_RATE)
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping": shipping,
        "total": to_money(subtotal + tax + shipping),
    }


def build_line_item(item: CartItem) -> OrderLineItem:
    """Frozen copy of a cart line: identity, labels and the cart's price snapshot."""
    product = item.product
    variant = item.variant
    return OrderLineItem(
        product_id=item.product_id,
        variant_id=item.variant_id,
        quantity=item.quantity,
        price=to_money(item.item_price),
        total=line_total(item.item_price, item.quantity),
        title=product.name if product else "Unknown product",
        variant_title=variant.label if variant else None,
        sku=variant.sku if variant else None,
    )


class OrderService:

    # ==========================================
    # Shared building blocks
    # ==========================================

    def deduct_stock(self, db: Session, item: CartItem):
        """
        Conditional atomic decrement: stock = stock - q WHERE stock >= q.
        Zero matched rows means the variant cannot cover the quantity.
        """
        matched = db.query(ProductVariant).filter(
            ProductVariant.id == item.variant_id,
            ProductVariant.stock >= item.quantity,
        ).update(
            {ProductVariant.stock: ProductVariant.stock - item.quantity},
            synchronize_session=False,
        )
        if matched == 0:
            product_name = item.product.name if item.product else f"product {item.product_id}"
            variant_label = item.variant.label if item.variant else f"variant {item.variant_id}"
            raise InsufficientStockError(product_name, variant_label)
        if item.variant is not None:
            db.expire(item.variant, ["stock"])

    def deduct_stock_for_items(self, db: Session, items: List[CartItem]):
        """Decrement every line in variant id order so concurrent conversions lock rows in the same order."""
        for item in sorted(items, key=lambda i: i.variant_id):
            self.deduct_stock(db, item)

    def build_order(
        self, db: Session, *,
        user_id: Optional[int], email: str, items: List[CartItem],
        status: str, financial_status: str,
        shipping_address: Optional[str] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """Create an Order plus frozen line items from cart items. Flushes only."""
        totals = compute_totals(sum_lines((i.item_price, i.quantity) for i in items))

        order = Order(
            order_number=generate_unique_order_number(db),
            user_id=user_id,
            email=email,
            status=status,
            financial_status=financial_status,
            fulfillment_status=FulfillmentStatus.UNFULFILLED.value,
            subtotal=totals["subtotal"],
            tax_amount=totals["tax"],
            shipping_amount=totals["shipping"],
            discount_amount=Decimal("0.00"),
            total_amount=totals["total"],
            currency=settings.CURRENCY.upper(),
            shipping_address=shipping_address,
            payment_method=payment_method,
            notes=notes,
        )
        order.line_items = [build_line_item(i) for i in items]
        db.add(order)
        db.flush()
        return order

    def convert_cart(self, db: Session, cart: Cart, order: Order, new_status: str):
        """
        Flip ACTIVE -> new_status exactly once, link the order and empty the
        cart. Losing the flip to a concurrent conversion raises ConflictError.
        """
        flipped = db.query(Cart).filter(
            Cart.id == cart.id,
            Cart.status == CartStatus.ACTIVE.value,
        ).update(
            {
                Cart.status: new_status,
                Cart.order_id: order.id,
                Cart.completed_at: now_utc(),
            },
            synchronize_session=False,
        )
        if flipped == 0:
            raise ConflictError("Cart has already been checked out.")
        cart_service.clear_items(db, cart)
        db.expire(cart)

    # ==========================================
    # Direct checkout
    # ==========================================

    def checkout(
        self, db: Session, user,
        shipping_address: str, payment_method: str, notes: Optional[str] = None,
    ) -> Order:
        """
        Convert the caller's ACTIVE cart into a pending order in one
        transaction: deduct stock, create order + line items, complete and
        empty the cart. Any failure rolls the whole unit back.
        """
        with atomic(db):
            cart = cart_service.find_active_cart(db, user.id, lock=True)
            if not cart:
                raise NoActiveCartError()
            items = list(cart.items)
            if not items:
                raise EmptyCartError()

            self.deduct_stock_for_items(db, items)

            order = self.build_order(
                db,
                user_id=user.id,
                email=user.email,
                items=items,
                status=OrderStatus.PENDING.value,
                financial_status=FinancialStatus.PENDING.value,
                shipping_address=shipping_address,
                payment_method=payment_method,
                notes=notes,
            )
            self.convert_cart(db, cart, order, CartStatus.COMPLETED.value)

        logger.info(
            f"Checkout: order {order.order_number} (id={order.id}) for user {user.id}, "
            f"total={money_str(order.total_amount)}"
        )
        return order

    # ==========================================
    # Queries
    # ==========================================

    def _with_lines(self, q):
        return q.options(
            selectinload(Order.line_items).selectinload(OrderLineItem.product),
            selectinload(Order.line_items).selectinload(OrderLineItem.variant),
        )

    def list_orders(self, db: Session, user_id: int) -> List[Order]:
        q = db.query(Order).filter(Order.user_id == user_id)
        return self._with_lines(q).order_by(desc(Order.created_at), desc(Order.id)).all()

    def get_order(self, db: Session, user, order_id: int) -> Order:
        order = self._with_lines(db.query(Order).filter(Order.id == order_id)).first()
        if not order:
            raise NotFoundError("Order not found.")
        if order.user_id != user.id and not is_allowed(user.role, "orders"):
            raise AuthorizationError("Access denied: this order does not belong to you.")
        return order

    # ==========================================
    # Admin
    # ==========================================

    _SORTS = {
        "created_at": Order.created_at,
        "total_amount": Order.total_amount,
        "order_number": Order.order_number,
        "status": Order.status,
    }

    def admin_list_orders(
        self, db: Session, *,
        status: Optional[str] = None,
        financial_status: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1, limit: int = 50,
        sort_by: str = "created_at", sort_order: str = "desc",
    ) -> Tuple[List[Order], int]:
        q = db.query(Order)
        if status:
            q = q.filter(Order.status == status)
        if financial_status:
            q = q.filter(Order.financial_status == financial_status)
        if fulfillment_status:
            q = q.filter(Order.fulfillment_status == fulfillment_status)
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(or_(Order.order_number.ilike(like), Order.email.ilike(like)))

        total = q.count()

        column = self._SORTS.get(sort_by)
        if column is None:
            raise BadRequestError(f"Cannot sort by '{sort_by}'.")
        direction = asc if sort_order == "asc" else desc
        orders = (
            self._with_lines(q)
            .order_by(direction(column), direction(Order.id))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return orders, total

    def admin_get_order(self, db: Session, order_id: int) -> Order:
        order = self._with_lines(db.query(Order).filter(Order.id == order_id)).options(
            selectinload(Order.transactions),
            selectinload(Order.user),
        ).first()
        if not order:
            raise NotFoundError("Order not found.")
        return order

    def update_status(self, db: Session, order_id: int, new_status: str) -> Order:
        with atomic(db):
            order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
            if not order:
                raise NotFoundError("Order not found.")
            current = OrderStatus(order.status)
            target = OrderStatus(new_status)
            if target not in ORDER_STATUS_TRANSITIONS[current]:
                raise ConflictError(
                    f"Cannot change order status from '{current.value}' to '{target.value}'."
                )
            order.status = target.value
            if target == OrderStatus.CANCELLED and order.financial_status == FinancialStatus.PENDING.value:
                order.financial_status = FinancialStatus.VOIDED.value
            if target == OrderStatus.DELIVERED:
                order.fulfillment_status = FulfillmentStatus.FULFILLED.value
        logger.info(f"Order {order.order_number}: status {current.value} -> {target.value}")
        return order

    def update_fulfillment(self, db: Session, order_id: int, fulfillment_status: str) -> Order:
        with atomic(db):
            order = db.query(Order).filter(Order.id == order_id).first()
            if not order:
                raise NotFoundError("Order not found.")
            order.fulfillment_status = FulfillmentStatus(fulfillment_status).value
        logger.info(f"Order {order.order_number}: fulfillment -> {fulfillment_status}")
        return order


# ==========================================
# Serialization
# ==========================================

def line_item_to_dict(li: OrderLineItem) -> dict:
    return {
        "id": li.id,
        "product_id": li.product_id,
        "variant_id": li.variant_id,
        "quantity": li.quantity,
        "price": money_str(li.price),
        "total": money_str(li.total),
        "title": li.title,
        "variant_title": li.variant_title,
        "sku": li.sku,
        "product": {
            "id": li.product.id,
            "name": li.product.name,
            "slug": li.product.slug,
            "image_url": li.product.primary_image_url,
        } if li.product else None,
        "variant": {
            "id": li.variant.id,
            "size": li.variant.size,
            "sku": li.variant.sku,
        } if li.variant else None,
    }


def transaction_to_dict(tx: OrderTransaction) -> dict:
    return {
        "id": tx.id,
        "gateway": tx.gateway,
        "gateway_id": tx.gateway_id,
        "gateway_session_id": tx.gateway_session_id,
        "status": tx.status,
        "payment_method": tx.payment_method,
        "amount": money_str(tx.amount),
        "currency": tx.currency,
        "created_at": tx.created_at.isoformat() if tx.created_at else None,
    }


def order_to_dict(order: Order, detailed: bool = False) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "email": order.email,
        "status": order.status,
        "financial_status": order.financial_status,
        "fulfillment_status": order.fulfillment_status,
        "subtotal": money_str(order.subtotal),
        "tax_amount": money_str(order.tax_amount),
        "shipping_amount": money_str(order.shipping_amount),
        "discount_amount": money_str(order.discount_amount),
        "total_amount": money_str(order.total_amount),
        "currency": order.currency,
        "shipping_address": order.shipping_address,
        "payment_method": order.payment_method,
        "notes": order.notes,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "line_items": [line_item_to_dict(li) for li in order.line_items],
    }
    if detailed:
        data["transactions"] = [transaction_to_dict(tx) for tx in order.transactions]
        data["customer"] = {
            "id": order.user.id,
            "email": order.user.email,
            "first_name": order.user.first_name,
            "last_name": order.user.last_name,
        } if order.user else None
    return data


# Singleton
order_service = OrderService()
