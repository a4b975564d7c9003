"""
Catalog Module - Public Routes
================================
Categories, brands, product listing/detail and search. No auth.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from common.helpers import page_meta
from modules.catalog.models import Gender
from modules.catalog.service import (
    category_service, brand_service, product_service,
    category_to_dict, brand_to_dict, product_to_dict,
)

router = APIRouter(tags=["catalog"])


# ==========================================
# Categories & Brands
# ==========================================

@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)):
    return [category_to_dict(c) for c in category_service.list_all(db)]


@router.get("/categories/{category_id}")
async def get_category(category_id: int, db: Session = Depends(get_db)):
    category = category_service.get_by_id(db, category_id)
    data = category_to_dict(category)
    data["children"] = [category_to_dict(c) for c in category.children if c.is_active]
    return data


@router.get("/brands")
async def list_brands(db: Session = Depends(get_db)):
    return [brand_to_dict(b) for b in brand_service.list_all(db)]


@router.get("/brands/{brand_id}")
async def get_brand(brand_id: int, db: Session = Depends(get_db)):
    return brand_to_dict(brand_service.get_by_id(db, brand_id))


# ==========================================
# Products
# ==========================================

@router.get("/products")
async def list_products(
    category_id: Optional[int] = Query(None),
    brand_id: Optional[int] = Query(None),
    featured: Optional[bool] = Query(None),
    is_new: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    products, total = product_service.list_products(
        db, category_id=category_id, brand_id=brand_id,
        featured=featured, is_new=is_new, page=page, limit=limit,
    )
    return {"data": [product_to_dict(p) for p in products], **page_meta(total, page, limit)}


@router.get("/products/{slug}")
async def get_product(slug: str, db: Session = Depends(get_db)):
    return product_to_dict(product_service.get_by_slug(db, slug), detailed=True)


@router.get("/search")
async def search_products(
    q: Optional[str] = Query(None, max_length=200),
    gender: Optional[Gender] = Query(None),
    category_slug: Optional[str] = Query(None),
    brand_slug: Optional[str] = Query(None),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    products, total = product_service.search(
        db, q,
        gender=gender.value if gender else None,
        category_slug=category_slug, brand_slug=brand_slug,
        min_price=min_price, max_price=max_price,
        page=page, limit=limit,
    )
    return {
        "data": [product_to_dict(p) for p in products],
        **page_meta(total, page, limit),
        "query": q,
    }
