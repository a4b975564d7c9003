"""
Cart Module - Service Layer
==============================
Cart management: get/create the single ACTIVE cart, add/update/remove items,
recalculate the cached total.

Public mutations run inside atomic(db) and commit on their own. The helpers
get_or_create_active_cart, recalculate_total and clear_items only flush, so
checkout and settlement can reuse them inside their own transaction.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from common.exceptions import NotFoundError, AuthorizationError
from common.helpers import sum_lines, to_money, money_str, line_total
from config.database import atomic
from modules.cart.models import Cart, CartItem, CartStatus
from modules.catalog.models import Product, ProductVariant

logger = logging.getLogger("storefront.cart")


class CartService:

    # ------------------------------------------
    # Cart lookup
    # ------------------------------------------

    def find_active_cart(self, db: Session, user_id: int, lock: bool = False) -> Optional[Cart]:
        q = db.query(Cart).filter(Cart.user_id == user_id, Cart.status == CartStatus.ACTIVE.value)
        if lock:
            q = q.with_for_update()
        return q.first()

    def get_or_create_active_cart(self, db: Session, user_id: int) -> Tuple[Cart, bool]:
        """
        Return (cart, created). Must run before any other write in the
        current transaction: a lost creation race rolls the session back
        and re-reads the winner's cart.
        """
        cart = self.find_active_cart(db, user_id, lock=True)
        if cart:
            return cart, False

        cart = Cart(user_id=user_id, status=CartStatus.ACTIVE.value, total_price=Decimal("0.00"))
        db.add(cart)
        try:
            db.flush()
        except IntegrityError:
            # uq_carts_user_active: a concurrent request created it first
            db.rollback()
            cart = self.find_active_cart(db, user_id, lock=True)
            if not cart:
                raise
            logger.info(f"Active cart creation race for user {user_id}; reusing cart {cart.id}")
            return cart, False
        logger.info(f"Created active cart {cart.id} for user {user_id}")
        return cart, True

    def get_cart(self, db: Session, user_id: int) -> Tuple[Cart, bool]:
        """Active cart for display; re-syncs the cached total if it drifted."""
        with atomic(db):
            cart, created = self.get_or_create_active_cart(db, user_id)
            if not created:
                expected = self._compute_total(db, cart.id)
                if to_money(cart.total_price) != expected:
                    logger.warning(
                        f"Cart {cart.id} total drifted ({cart.total_price} != {expected}); resynced"
                    )
                    cart.total_price = expected
                    db.flush()
        return cart, created

    # ------------------------------------------
    # Item mutations
    # ------------------------------------------

    def add_item(
        self, db: Session, user_id: int,
        product_id: int, variant_id: int, quantity: int,
    ) -> Tuple[CartItem, bool]:
        """
        Add `quantity` of a variant. An existing line for the same variant is
        incremented and its price snapshot refreshed to the variant's current
        price. Returns (item, created).
        """
        with atomic(db):
            cart, _ = self.get_or_create_active_cart(db, user_id)

            product = db.query(Product).filter(
                Product.id == product_id, Product.is_active == True,
            ).first()
            if not product:
                raise NotFoundError("Product not found.")
            variant = db.query(ProductVariant).filter(
                ProductVariant.id == variant_id,
                ProductVariant.product_id == product_id,
                ProductVariant.is_active == True,
            ).first()
            if not variant:
                raise NotFoundError("Product variant not found.")

            item = db.query(CartItem).filter(
                CartItem.cart_id == cart.id,
                CartItem.variant_id == variant_id,
            ).first()

            created = item is None
            if item:
                item.quantity = item.quantity + quantity
                item.item_price = to_money(variant.price)
            else:
                item = CartItem(
                    cart_id=cart.id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    item_price=to_money(variant.price),
                )
                db.add(item)
            db.flush()

            self.recalculate_total(db, cart)

        logger.info(f"Cart {cart.id}: variant {variant_id} x{quantity} ({'new' if created else 'incremented'})")
        return item, created

    def update_item_quantity(self, db: Session, user_id: int, item_id: int, quantity: int) -> CartItem:
        with atomic(db):
            item = self._owned_item(db, user_id, item_id)
            item.quantity = quantity
            db.flush()
            self.recalculate_total(db, item.cart)
        return item

    def remove_item(self, db: Session, user_id: int, item_id: int):
        with atomic(db):
            item = self._owned_item(db, user_id, item_id)
            cart = item.cart
            db.delete(item)
            db.flush()
            self.recalculate_total(db, cart)

    def _owned_item(self, db: Session, user_id: int, item_id: int) -> CartItem:
        item = db.query(CartItem).filter(CartItem.id == item_id).first()
        if not item:
            raise NotFoundError("Cart item not found.")
        cart = db.query(Cart).filter(Cart.id == item.cart_id).with_for_update().first()
        if cart.user_id != user_id or cart.status != CartStatus.ACTIVE.value:
            raise AuthorizationError("Access denied: this item does not belong to your active cart.")
        return item

    # ------------------------------------------
    # Totals
    # ------------------------------------------

    def _compute_total(self, db: Session, cart_id: int) -> Decimal:
        rows = db.query(CartItem.item_price, CartItem.quantity).filter(
            CartItem.cart_id == cart_id,
        ).all()
        return sum_lines(rows)

    def recalculate_total(self, db: Session, cart: Cart) -> Decimal:
        """Persist the exact Decimal sum of item_price * quantity over the cart's items."""
        total = self._compute_total(db, cart.id)
        cart.total_price = total
        db.flush()
        return total

    def clear_items(self, db: Session, cart: Cart):
        """Delete all items and zero the cached total (cart row is kept)."""
        db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
        cart.total_price = Decimal("0.00")
        db.flush()
        db.expire(cart, ["items"])


# ==========================================
# Serialization
# ==========================================

def cart_item_to_dict(item: CartItem) -> dict:
    variant = item.variant
    product = item.product
    return {
        "id": item.id,
        "cart_id": item.cart_id,
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "quantity": item.quantity,
        "item_price": money_str(item.item_price),
        "line_total": money_str(line_total(item.item_price, item.quantity)),
        "product": {"id": product.id, "name": product.name, "slug": product.slug} if product else None,
        "variant": {
            "id": variant.id,
            "sku": variant.sku,
            "title": variant.title,
            "size": variant.size,
            "stock": variant.stock,
            "price": money_str(variant.price),
        } if variant else None,
    }


def cart_to_dict(cart: Cart) -> dict:
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "status": cart.status,
        "total_price": money_str(cart.total_price),
        "item_count": cart.item_count,
        "items": [cart_item_to_dict(i) for i in cart.items],
        "created_at": cart.created_at.isoformat() if cart.created_at else None,
        "updated_at": cart.updated_at.isoformat() if cart.updated_at else None,
    }


# Singleton
cart_service = CartService()
