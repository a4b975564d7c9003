"""
Wishlist Module - Service Layer
=================================
Saved variants per user. The (user, variant) unique constraint is the
final guard against double inserts.
"""

import logging
from typing import List

from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError

from config.database import atomic
from common.exceptions import NotFoundError, DuplicateError
from common.helpers import money_str
from modules.catalog.models import Product, ProductVariant
from modules.wishlist.models import WishlistItem

logger = logging.getLogger("storefront.wishlist")

_DUPLICATE_MSG = "This item is already in your wishlist."


class WishlistService:

    def list_items(self, db: Session, user_id: int) -> List[WishlistItem]:
        return (
            db.query(WishlistItem)
            .options(
                selectinload(WishlistItem.product).selectinload(Product.images),
                selectinload(WishlistItem.variant),
            )
            .filter(WishlistItem.user_id == user_id)
            .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
            .all()
        )

    def add(self, db: Session, user_id: int, product_id: int, variant_id: int) -> WishlistItem:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Product not found.")
        variant = db.query(ProductVariant).filter(
            ProductVariant.id == variant_id,
            ProductVariant.product_id == product_id,
        ).first()
        if not variant:
            raise NotFoundError("Variant not found or does not belong to this product.")

        if self.contains(db, user_id, variant_id):
            raise DuplicateError(_DUPLICATE_MSG)

        item = WishlistItem(user_id=user_id, product_id=product_id, variant_id=variant_id)
        try:
            with atomic(db):
                db.add(item)
        except IntegrityError:
            raise DuplicateError(_DUPLICATE_MSG)
        logger.info(f"Wishlist: user {user_id} saved variant {variant_id}")
        return item

    def remove(self, db: Session, user_id: int, variant_id: int):
        with atomic(db):
            deleted = db.query(WishlistItem).filter(
                WishlistItem.user_id == user_id,
                WishlistItem.variant_id == variant_id,
            ).delete(synchronize_session=False)
            if not deleted:
                raise NotFoundError("Item not found in wishlist.")

    def contains(self, db: Session, user_id: int, variant_id: int) -> bool:
        return db.query(WishlistItem.id).filter(
            WishlistItem.user_id == user_id,
            WishlistItem.variant_id == variant_id,
        ).first() is not None


def wishlist_item_to_dict(item: WishlistItem) -> dict:
    product = item.product
    variant = item.variant
    return {
        "id": item.id,
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "created_at": item.created_at.isoformat() if item.created_at else None,
        "product": {
            "id": product.id,
            "name": product.name,
            "slug": product.slug,
            "price": money_str(product.price),
            "primary_image_url": product.primary_image_url,
        } if product else None,
        "variant": {
            "id": variant.id,
            "size": variant.size,
            "sku": variant.sku,
            "stock": variant.stock,
            "price": money_str(variant.price),
        } if variant else None,
    }


# Singleton
wishlist_service = WishlistService()
