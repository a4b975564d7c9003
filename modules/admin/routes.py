"""
Admin Module - Reporting & Users Routes
=========================================
Dashboard statistics, best sellers, revenue chart, account listing and role
changes.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import MAX_PAGE_SIZE
from common.helpers import page_meta
from common.schemas import ApiModel
from modules.auth.deps import require_capability
from modules.auth.service import user_to_dict
from modules.admin.dashboard_service import dashboard_service
from modules.admin.staff_service import staff_service
from modules.user.models import UserRole

router = APIRouter(prefix="/admin", tags=["admin"])


class RoleUpdate(ApiModel):
    role: UserRole


# ==========================================
# Reports
# ==========================================

@router.get("/stats")
async def stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user=Depends(require_capability("reports")),
):
    return dashboard_service.get_overview_stats(db, start_date, end_date)


@router.get("/top-products")
async def top_products(
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    user=Depends(require_capability("reports")),
):
    return dashboard_service.get_top_products(db, limit)


@router.get("/revenue-chart")
async def revenue_chart(
    days: int = Query(30, ge=1, le=366),
    db: Session = Depends(get_db),
    user=Depends(require_capability("reports")),
):
    return dashboard_service.get_daily_revenue(db, days)


# ==========================================
# Users
# ==========================================

@router.get("/users")
async def list_users(
    role: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    user=Depends(require_capability("users")),
):
    users, total = staff_service.list_users(db, role, page, limit, sort_by, sort_order)
    return {"data": [user_to_dict(u) for u in users], **page_meta(total, page, limit)}


@router.put("/users/{user_id}/role")
async def change_role(
    user_id: int,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    user=Depends(require_capability("staff")),
):
    updated = staff_service.change_role(db, user, user_id, body.role.value)
    return user_to_dict(updated)
