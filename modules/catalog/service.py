"""
Catalog Module - Service Layer
================================
Business logic for Categories, Brands, Products, Variants and Images,
plus the public product listing and search.
Generic slugged-entity service to avoid code duplication.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_

from config.database import atomic
from common.exceptions import NotFoundError, DuplicateError, BadRequestError
from common.helpers import slugify, to_money, money_str
from modules.catalog.models import (
    Category, Brand, Product, ProductVariant, ProductImage,
)

logger = logging.getLogger("storefront.catalog")


def _ensure_unique(db: Session, model, field: str, value, exclude_id: Optional[int] = None, label: str = ""):
    q = db.query(model.id).filter(getattr(model, field) == value)
    if exclude_id is not None:
        q = q.filter(model.id != exclude_id)
    if q.first():
        raise DuplicateError(f"{label or model.__name__} with this {field} already exists.")


def _require(db: Session, model, entity_id: Optional[int], label: str):
    if entity_id is None:
        return None
    obj = db.query(model).filter(model.id == entity_id).first()
    if not obj:
        raise NotFoundError(f"{label} not found.")
    return obj


# ==========================================
# Simple Slugged Entity Service (Category, Brand)
# ==========================================

class SluggedEntityService:
    """Generic CRUD for entities identified by a unique slug derived from the name."""

    def __init__(self, model, label: str):
        self.model = model
        self.label = label

    def list_all(self, db: Session, active_only: bool = True):
        q = db.query(self.model)
        if active_only:
            q = q.filter(self.model.is_active == True)
        return q.order_by(self.model.name).all()

    def get_by_id(self, db: Session, item_id: int):
        item = db.query(self.model).filter(self.model.id == item_id).first()
        if not item:
            raise NotFoundError(f"{self.label} not found.")
        return item

    def _check_refs(self, db: Session, data: dict, item_id: Optional[int] = None):
        """Hook for entity-specific reference checks."""

    def create(self, db: Session, data: dict):
        data = dict(data)
        data["slug"] = slugify(data.get("slug") or data["name"])
        if not data["slug"]:
            raise BadRequestError(f"{self.label} name must contain letters or digits.")
        with atomic(db):
            _ensure_unique(db, self.model, "slug", data["slug"], label=self.label)
            self._check_refs(db, data)
            item = self.model(**data)
            db.add(item)
            db.flush()
        logger.info(f"{self.label} created: {item.slug} (id={item.id})")
        return item

    def update(self, db: Session, item_id: int, changes: dict):
        with atomic(db):
            item = self.get_by_id(db, item_id)
            if changes.get("slug"):
                slug = slugify(changes["slug"])
                _ensure_unique(db, self.model, "slug", slug, exclude_id=item.id, label=self.label)
                changes = {**changes, "slug": slug}
            self._check_refs(db, changes, item.id)
            for field, value in changes.items():
                setattr(item, field, value)
        return item

    def delete(self, db: Session, item_id: int):
        with atomic(db):
            item = self.get_by_id(db, item_id)
            db.delete(item)
        logger.info(f"{self.label} deleted: id={item_id}")


class CategoryService(SluggedEntityService):

    def _check_refs(self, db: Session, data: dict, item_id: Optional[int] = None):
        parent_id = data.get("parent_id")
        if parent_id is None:
            return
        if item_id is not None and parent_id == item_id:
            raise BadRequestError("A category cannot be its own parent.")
        _require(db, Category, parent_id, "Parent category")

    def subtree_ids(self, db: Session, slug: str) -> List[int]:
        """Ids of the category with `slug` and its direct sub-categories."""
        cat = db.query(Category).filter(Category.slug == slug).first()
        if not cat:
            return []
        return [cat.id] + [c.id for c in cat.children]


# ==========================================
# Product Service
# ==========================================

class ProductService:

    def _base_query(self, db: Session, active_only: bool = True):
        q = db.query(Product).options(
            selectinload(Product.images),
            selectinload(Product.category),
            selectinload(Product.brand),
        )
        if active_only:
            q = q.filter(Product.is_active == True)
        return q

    def list_products(
        self, db: Session, *,
        category_id: Optional[int] = None,
        brand_id: Optional[int] = None,
        featured: Optional[bool] = None,
        is_new: Optional[bool] = None,
        page: int = 1, limit: int = 20,
    ) -> Tuple[List[Product], int]:
        q = self._base_query(db)
        if category_id is not None:
            q = q.filter(Product.category_id == category_id)
        if brand_id is not None:
            q = q.filter(Product.brand_id == brand_id)
        if featured is not None:
            q = q.filter(Product.is_featured == featured)
        if is_new is not None:
            q = q.filter(Product.is_new == is_new)
        total = q.count()
        products = q.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return products, total

    def search(
        self, db: Session, q: str, *,
        gender: Optional[str] = None,
        category_slug: Optional[str] = None,
        brand_slug: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        page: int = 1, limit: int = 20,
    ) -> Tuple[List[Product], int]:
        term = (q or "").strip()
        if not term:
            raise BadRequestError("The search parameter (q) is required.")

        like = f"%{term}%"
        query = self._base_query(db).filter(
            or_(Product.name.ilike(like), Product.description.ilike(like))
        )
        if gender:
            query = query.filter(Product.gender == gender.upper())
        if min_price is not None:
            query = query.filter(Product.price >= min_price)
        if max_price is not None:
            query = query.filter(Product.price <= max_price)
        if category_slug:
            ids = category_service.subtree_ids(db, category_slug)
            query = query.filter(Product.category_id.in_(ids or [-1]))
        if brand_slug:
            query = query.join(Brand, Product.brand_id == Brand.id).filter(Brand.slug == brand_slug)

        total = query.count()
        products = query.order_by(Product.name.asc()).offset((page - 1) * limit).limit(limit).all()
        return products, total

    def list_all(self, db: Session) -> List[Product]:
        return self._base_query(db, active_only=False).order_by(Product.id).all()

    def get_by_slug(self, db: Session, slug: str) -> Product:
        product = self._base_query(db).options(selectinload(Product.variants)).filter(Product.slug == slug).first()
        if not product:
            raise NotFoundError("Product not found.")
        return product

    def get_by_id(self, db: Session, product_id: int) -> Product:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Product not found.")
        return product

    def create(self, db: Session, data: dict) -> Product:
        data = dict(data)
        data["slug"] = slugify(data.get("slug") or data["name"])
        if data.get("price") is not None:
            data["price"] = to_money(data["price"])
        with atomic(db):
            _ensure_unique(db, Product, "slug", data["slug"], label="Product")
            _require(db, Category, data.get("category_id"), "Category")
            _require(db, Brand, data.get("brand_id"), "Brand")
            product = Product(**data)
            db.add(product)
            db.flush()
        logger.info(f"Product created: {product.slug} (id={product.id})")
        return product

    def update(self, db: Session, product_id: int, changes: dict) -> Product:
        with atomic(db):
            product = self.get_by_id(db, product_id)
            if "slug" in changes:
                changes = {**changes, "slug": slugify(changes["slug"])}
                _ensure_unique(db, Product, "slug", changes["slug"], exclude_id=product.id, label="Product")
            if "category_id" in changes:
                _require(db, Category, changes["category_id"], "Category")
            if "brand_id" in changes:
                _require(db, Brand, changes["brand_id"], "Brand")
            if changes.get("price") is not None:
                changes = {**changes, "price": to_money(changes["price"])}
            for field, value in changes.items():
                setattr(product, field, value)
        return product

    def delete(self, db: Session, product_id: int):
        with atomic(db):
            product = self.get_by_id(db, product_id)
            db.delete(product)
        logger.info(f"Product deleted: id={product_id}")

    # ------------------------------------------
    # Variants
    # ------------------------------------------

    def get_variant(self, db: Session, variant_id: int) -> ProductVariant:
        variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise NotFoundError("Product variant not found.")
        return variant

    def add_variant(self, db: Session, product_id: int, data: dict) -> ProductVariant:
        with atomic(db):
            product = self.get_by_id(db, product_id)
            _ensure_unique(db, ProductVariant, "sku", data["sku"], label="Variant")
            if db.query(ProductVariant.id).filter(
                ProductVariant.product_id == product.id,
                ProductVariant.size == data["size"],
            ).first():
                raise DuplicateError(f"Product already has a variant of size {data['size']}.")
            price = data.get("price")
            if price is None:
                price = product.price
            if price is None:
                raise BadRequestError("Variant price is required when the product has no price.")
            variant = ProductVariant(
                product_id=product.id,
                sku=data["sku"],
                size=data["size"],
                title=data.get("title") or f"{product.name} - {data['size']}",
                stock=data.get("stock", 0),
                price=to_money(price),
                is_active=data.get("is_active", True),
            )
            db.add(variant)
            db.flush()
        logger.info(f"Variant created: {variant.sku} for product {product_id}")
        return variant

    def update_variant(self, db: Session, variant_id: int, changes: dict) -> ProductVariant:
        with atomic(db):
            variant = self.get_variant(db, variant_id)
            if "sku" in changes:
                _ensure_unique(db, ProductVariant, "sku", changes["sku"], exclude_id=variant.id, label="Variant")
            if "size" in changes and db.query(ProductVariant.id).filter(
                ProductVariant.product_id == variant.product_id,
                ProductVariant.size == changes["size"],
                ProductVariant.id != variant.id,
            ).first():
                raise DuplicateError(f"Product already has a variant of size {changes['size']}.")
            if changes.get("price") is not None:
                changes = {**changes, "price": to_money(changes["price"])}
            for field, value in changes.items():
                setattr(variant, field, value)
        return variant

    def delete_variant(self, db: Session, variant_id: int):
        with atomic(db):
            db.delete(self.get_variant(db, variant_id))

    # ------------------------------------------
    # Images
    # ------------------------------------------

    def add_image(self, db: Session, product_id: int, data: dict) -> ProductImage:
        with atomic(db):
            product = self.get_by_id(db, product_id)
            is_primary = bool(data.get("is_primary")) or not product.images
            if is_primary:
                self._clear_primary(db, product.id)
            image = ProductImage(
                product_id=product.id,
                image_url=data["image_url"],
                alt_text=data.get("alt_text"),
                sort_order=data.get("sort_order", len(product.images)),
                is_primary=is_primary,
            )
            db.add(image)
            db.flush()
        return image

    def set_primary_image(self, db: Session, image_id: int) -> ProductImage:
        with atomic(db):
            image = self._get_image(db, image_id)
            self._clear_primary(db, image.product_id)
            image.is_primary = True
        return image

    def delete_image(self, db: Session, image_id: int):
        with atomic(db):
            image = self._get_image(db, image_id)
            product_id, was_primary = image.product_id, image.is_primary
            db.delete(image)
            db.flush()
            if was_primary:
                # Promote the next image so a product with images always has a primary one
                nxt = db.query(ProductImage).filter(
                    ProductImage.product_id == product_id,
                ).order_by(ProductImage.sort_order, ProductImage.id).first()
                if nxt:
                    nxt.is_primary = True

    def _get_image(self, db: Session, image_id: int) -> ProductImage:
        image = db.query(ProductImage).filter(ProductImage.id == image_id).first()
        if not image:
            raise NotFoundError("Product image not found.")
        return image

    def _clear_primary(self, db: Session, product_id: int):
        db.query(ProductImage).filter(
            ProductImage.product_id == product_id,
            ProductImage.is_primary == True,
        ).update({ProductImage.is_primary: False}, synchronize_session=False)


# ==========================================
# Serialization
# ==========================================

def category_to_dict(c: Category) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "parent_id": c.parent_id,
        "description": c.description,
        "image_url": c.image_url,
        "is_active": c.is_active,
        "sort_order": c.sort_order,
    }


def brand_to_dict(b: Brand) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "slug": b.slug,
        "description": b.description,
        "logo_url": b.logo_url,
        "website_url": b.website_url,
        "is_active": b.is_active,
    }


def variant_to_dict(v: ProductVariant) -> dict:
    return {
        "id": v.id,
        "product_id": v.product_id,
        "sku": v.sku,
        "title": v.title,
        "size": v.size,
        "stock": v.stock,
        "price": money_str(v.price),
        "is_active": v.is_active,
    }


def image_to_dict(i: ProductImage) -> dict:
    return {
        "id": i.id,
        "product_id": i.product_id,
        "image_url": i.image_url,
        "alt_text": i.alt_text,
        "sort_order": i.sort_order,
        "is_primary": i.is_primary,
    }


def product_to_dict(p: Product, detailed: bool = False) -> dict:
    data = {
        "id": p.id,
        "name": p.name,
        "slug": p.slug,
        "description": p.description,
        "price": money_str(p.price),
        "gender": p.gender,
        "is_active": p.is_active,
        "is_featured": p.is_featured,
        "is_new": p.is_new,
        "primary_image_url": p.primary_image_url,
        "category": {"id": p.category.id, "name": p.category.name, "slug": p.category.slug} if p.category else None,
        "brand": {"id": p.brand.id, "name": p.brand.name, "slug": p.brand.slug} if p.brand else None,
    }
    if detailed:
        data["variants"] = [variant_to_dict(v) for v in p.variants if v.is_active]
        data["images"] = [image_to_dict(i) for i in p.images]
    return data


# Singletons
category_service = CategoryService(Category, "Category")
brand_service = SluggedEntityService(Brand, "Brand")
product_service = ProductService()
