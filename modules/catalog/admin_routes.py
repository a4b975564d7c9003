"""
Catalog Module - Admin Routes
===============================
Create/update/delete categories, brands, products, variants and images.
Requires the "catalog" capability.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import ApiModel
from modules.auth.deps import require_capability
from modules.catalog.models import Gender
from modules.catalog.service import (
    category_service, brand_service, product_service,
    category_to_dict, brand_to_dict, product_to_dict, variant_to_dict, image_to_dict,
)

router = APIRouter(prefix="/admin", tags=["catalog-admin"])

staff = require_capability("catalog")


# ==========================================
# Schemas
# ==========================================

class CategoryCreate(ApiModel):
    name: str = Field(..., min_length=2, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = Field(None, gt=0)
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    sort_order: int = 0


class CategoryUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = Field(None, gt=0)
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class BrandCreate(ApiModel):
    name: str = Field(..., min_length=2, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[str] = Field(None, max_length=500)
    website_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True


class BrandUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[str] = Field(None, max_length=500)
    website_url: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class ProductCreate(ApiModel):
    name: str = Field(..., min_length=3, max_length=200)
    slug: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    gender: Gender = Gender.UNISEX
    category_id: Optional[int] = Field(None, gt=0)
    brand_id: Optional[int] = Field(None, gt=0)
    is_active: bool = True
    is_featured: bool = False
    is_new: bool = False


class ProductUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=3, max_length=200)
    slug: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    gender: Optional[Gender] = None
    category_id: Optional[int] = Field(None, gt=0)
    brand_id: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_new: Optional[bool] = None


class VariantCreate(ApiModel):
    sku: str = Field(..., min_length=1, max_length=100)
    size: str = Field(..., min_length=1, max_length=50)
    title: Optional[str] = Field(None, max_length=200)
    stock: int = Field(0, ge=0)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    is_active: bool = True


class VariantUpdate(ApiModel):
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    size: Optional[str] = Field(None, min_length=1, max_length=50)
    title: Optional[str] = Field(None, max_length=200)
    stock: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    is_active: Optional[bool] = None


class ImageCreate(ApiModel):
    image_url: str = Field(..., min_length=1, max_length=500)
    alt_text: Optional[str] = Field(None, max_length=255)
    sort_order: Optional[int] = Field(None, ge=0)
    is_primary: bool = False


def _enum_values(data: dict) -> dict:
    if "gender" in data and data["gender"] is not None:
        data["gender"] = Gender(data["gender"]).value
    return data


# ==========================================
# Categories
# ==========================================

@router.post("/categories")
async def create_category(body: CategoryCreate, db: Session = Depends(get_db), user=Depends(staff)):
    category = category_service.create(db, body.model_dump())
    return JSONResponse(category_to_dict(category), status_code=201)


@router.put("/categories/{category_id}")
async def update_category(category_id: int, body: CategoryUpdate, db: Session = Depends(get_db), user=Depends(staff)):
    return category_to_dict(category_service.update(db, category_id, body.changes()))


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(category_id: int, db: Session = Depends(get_db), user=Depends(staff)):
    category_service.delete(db, category_id)
    return Response(status_code=204)


# ==========================================
# Brands
# ==========================================

@router.post("/brands")
async def create_brand(body: BrandCreate, db: Session = Depends(get_db), user=Depends(staff)):
    brand = brand_service.create(db, body.model_dump())
    return JSONResponse(brand_to_dict(brand), status_code=201)


@router.put("/brands/{brand_id}")
async def update_brand(brand_id: int, body: BrandUpdate, db: Session = Depends(get_db), user=Depends(staff)):
    return brand_to_dict(brand_service.update(db, brand_id, body.changes()))


@router.delete("/brands/{brand_id}", status_code=204)
async def delete_brand(brand_id: int, db: Session = Depends(get_db), user=Depends(staff)):
    brand_service.delete(db, brand_id)
    return Response(status_code=204)


# ==========================================
# Products
# ==========================================

@router.get("/products")
async def list_all_products(db: Session = Depends(get_db), user=Depends(staff)):
    """Every product, including inactive ones."""
    return [product_to_dict(p) for p in product_service.list_all(db)]


@router.post("/products")
async def create_product(body: ProductCreate, db: Session = Depends(get_db), user=Depends(staff)):
    product = product_service.create(db, _enum_values(body.model_dump()))
    return JSONResponse(product_to_dict(product, detailed=True), status_code=201)


@router.put("/products/{product_id}")
async def update_product(product_id: int, body: ProductUpdate, db: Session = Depends(get_db), user=Depends(staff)):
    product = product_service.update(db, product_id, _enum_values(body.changes()))
    return product_to_dict(product, detailed=True)


@router.delete("/products/{product_id}", status_code=204)
async def delete_product(product_id: int, db: Session = Depends(get_db), user=Depends(staff)):
    product_service.delete(db, product_id)
    return Response(status_code=204)


# ==========================================
# Variants
# ==========================================

@router.post("/products/{product_id}/variants")
async def create_variant(product_id: int, body: VariantCreate, db: Session = Depends(get_db), user=Depends(staff)):
    variant = product_service.add_variant(db, product_id, body.model_dump())
    return JSONResponse(variant_to_dict(variant), status_code=201)


@router.put("/variants/{variant_id}")
async def update_variant(variant_id: int, body: VariantUpdate, db: Session = Depends(get_db), user=Depends(staff)):
    return variant_to_dict(product_service.update_variant(db, variant_id, body.changes()))


@router.delete("/variants/{variant_id}", status_code=204)
async def delete_variant(variant_id: int, db: Session = Depends(get_db), user=Depends(staff)):
    product_service.delete_variant(db, variant_id)
    return Response(status_code=204)


# ==========================================
# Images
# ==========================================

@router.post("/products/{product_id}/images")
async def create_image(product_id: int, body: ImageCreate, db: Session = Depends(get_db), user=Depends(staff)):
    data = body.model_dump(exclude_none=True)
    image = product_service.add_image(db, product_id, data)
    return JSONResponse(image_to_dict(image), status_code=201)


@router.put("/images/{image_id}/primary")
async def set_primary_image(image_id: int, db: Session = Depends(get_db), user=Depends(staff)):
    return image_to_dict(product_service.set_primary_image(db, image_id))


@router.delete("/images/{image_id}", status_code=204)
async def delete_image(image_id: int, db: Session = Depends(get_db), user=Depends(staff)):
    product_service.delete_image(db, image_id)
    return Response(status_code=204)
