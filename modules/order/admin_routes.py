"""
Order Module - Admin Routes
==============================
Order management for staff: filtered listing, detail, status workflow and
fulfillment updates. Requires the "orders" capability.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import MAX_PAGE_SIZE
from common.helpers import page_meta
from common.schemas import ApiModel
from modules.auth.deps import require_capability
from modules.order.models import OrderStatus, FinancialStatus, FulfillmentStatus
from modules.order.service import order_service, order_to_dict

router = APIRouter(prefix="/admin/orders", tags=["order-admin"])


class StatusUpdateRequest(ApiModel):
    status: OrderStatus


class FulfillmentUpdateRequest(ApiModel):
    fulfillment_status: FulfillmentStatus


@router.get("")
async def admin_orders(
    status: Optional[OrderStatus] = Query(None),
    financial_status: Optional[FinancialStatus] = Query(None),
    fulfillment_status: Optional[FulfillmentStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    user=Depends(require_capability("orders")),
):
    orders, total = order_service.admin_list_orders(
        db,
        status=status.value if status else None,
        financial_status=financial_status.value if financial_status else None,
        fulfillment_status=fulfillment_status.value if fulfillment_status else None,
        search=search,
        page=page, limit=limit,
        sort_by=sort_by, sort_order=sort_order,
    )
    return {"data": [order_to_dict(o) for o in orders], **page_meta(total, page, limit)}


@router.get("/{order_id}")
async def admin_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    user=Depends(require_capability("orders")),
):
    return order_to_dict(order_service.admin_get_order(db, order_id), detailed=True)


@router.put("/{order_id}/status")
async def admin_update_status(
    order_id: int,
    body: StatusUpdateRequest,
    db: Session = Depends(get_db),
    user=Depends(require_capability("orders")),
):
    order = order_service.update_status(db, order_id, body.status.value)
    return order_to_dict(order)


@router.put("/{order_id}/fulfillment")
async def admin_update_fulfillment(
    order_id: int,
    body: FulfillmentUpdateRequest,
    db: Session = Depends(get_db),
    user=Depends(require_capability("orders")),
):
    order = order_service.update_fulfillment(db, order_id, body.fulfillment_status.value)
    return order_to_dict(order)
