"""
Cart Module - Routes
======================
Active cart view and item mutations. All endpoints require login.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import ApiModel
from modules.auth.deps import require_login
from modules.cart.service import cart_service, cart_to_dict, cart_item_to_dict

router = APIRouter(prefix="/cart", tags=["cart"])


class CartItemAddRequest(ApiModel):
    product_id: int = Field(..., gt=0)
    variant_id: int = Field(..., gt=0)
    quantity: int = Field(1, ge=1, le=1000)


class CartItemUpdateRequest(ApiModel):
    quantity: int = Field(..., ge=1, le=1000)


@router.get("")
async def get_cart(db: Session = Depends(get_db), me=Depends(require_login)):
    """Active cart (created on first access -> 201)."""
    cart, created = cart_service.get_cart(db, me.id)
    return JSONResponse(cart_to_dict(cart), status_code=201 if created else 200)


@router.post("/items")
async def add_item(
    body: CartItemAddRequest,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    item, created = cart_service.add_item(
        db, me.id, body.product_id, body.variant_id, body.quantity,
    )
    return JSONResponse(cart_item_to_dict(item), status_code=201 if created else 200)


@router.put("/items/{item_id}")
async def update_item(
    item_id: int,
    body: CartItemUpdateRequest,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    item = cart_service.update_item_quantity(db, me.id, item_id, body.quantity)
    return cart_item_to_dict(item)


@router.delete("/items/{item_id}", status_code=204)
async def remove_item(
    item_id: int,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    cart_service.remove_item(db, me.id, item_id)
    return Response(status_code=204)
