"""
Order Module - Customer Routes
================================
Direct checkout and the caller's order history.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.helpers import money_str
from common.schemas import ApiModel
from modules.auth.deps import require_login
from modules.order.service import order_service, order_to_dict

router = APIRouter(prefix="/orders", tags=["orders"])


class CheckoutRequest(ApiModel):
    shipping_address: str = Field(..., min_length=5, max_length=500)
    payment_method: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


@router.post("")
async def checkout(
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    order = order_service.checkout(
        db, me, body.shipping_address, body.payment_method, body.notes,
    )
    return JSONResponse({
        "message": "Order created successfully",
        "order_id": order.id,
        "order_number": order.order_number,
        "total": money_str(order.total_amount),
        "status": order.status,
    }, status_code=201)


@router.get("")
async def list_orders(db: Session = Depends(get_db), me=Depends(require_login)):
    return [order_to_dict(o) for o in order_service.list_orders(db, me.id)]


@router.get("/{order_id}")
async def get_order(order_id: int, db: Session = Depends(get_db), me=Depends(require_login)):
    return order_to_dict(order_service.get_order(db, me, order_id))
