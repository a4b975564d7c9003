"""
Wishlist Module - Routes
==========================
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import ApiModel
from modules.auth.deps import require_login
from modules.wishlist.service import wishlist_service, wishlist_item_to_dict

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


class WishlistAddRequest(ApiModel):
    product_id: int = Field(..., gt=0)
    variant_id: int = Field(..., gt=0)


@router.get("")
async def list_wishlist(db: Session = Depends(get_db), me=Depends(require_login)):
    return [wishlist_item_to_dict(i) for i in wishlist_service.list_items(db, me.id)]


@router.post("")
async def add_to_wishlist(
    body: WishlistAddRequest,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    item = wishlist_service.add(db, me.id, body.product_id, body.variant_id)
    return JSONResponse(
        {"message": "Item added to wishlist", "item": wishlist_item_to_dict(item)},
        status_code=201,
    )


@router.delete("/{variant_id}", status_code=204)
async def remove_from_wishlist(variant_id: int, db: Session = Depends(get_db), me=Depends(require_login)):
    wishlist_service.remove(db, me.id, variant_id)
    return Response(status_code=204)


@router.head("/{variant_id}")
async def wishlist_contains(variant_id: int, db: Session = Depends(get_db), me=Depends(require_login)):
    found = wishlist_service.contains(db, me.id, variant_id)
    return Response(status_code=200 if found else 404)
