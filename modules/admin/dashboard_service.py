"""
Admin Dashboard Service
=========================
Aggregated statistics for the admin dashboard.
"""

from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy import func as sa_func

from common.exceptions import BadRequestError
from common.helpers import now_utc, to_money, money_str
from modules.order.models import Order, OrderLineItem, OrderStatus, FinancialStatus
from modules.user.models import User
from modules.catalog.models import Product


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


class DashboardService:

    def get_overview_stats(
        self, db: Session,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Key business metrics, optionally restricted to an inclusive date range."""
        if start_date and end_date and start_date > end_date:
            raise BadRequestError("start_date must not be after end_date.")

        orders = db.query(Order)
        if start_date:
            orders = orders.filter(Order.created_at >= _day_start(start_date))
        if end_date:
            orders = orders.filter(Order.created_at < _day_start(end_date + timedelta(days=1)))

        total_orders = orders.count()
        paid = orders.filter(Order.financial_status == FinancialStatus.PAID.value)
        paid_orders = paid.count()
        cancelled_orders = orders.filter(Order.status == OrderStatus.CANCELLED.value).count()

        total_revenue = to_money(
            paid.with_entities(sa_func.coalesce(sa_func.sum(Order.total_amount), 0)).scalar()
        )
        average = to_money(total_revenue / paid_orders) if paid_orders else to_money(0)

        return {
            "orders": {
                "total": total_orders,
                "paid": paid_orders,
                "cancelled": cancelled_orders,
            },
            "revenue": {
                "total": money_str(total_revenue),
                "average": money_str(average),
            },
            "products": db.query(Product).count(),
            "users": db.query(User).count(),
        }

    def get_top_products(self, db: Session, limit: int = 10) -> List[Dict[str, Any]]:
        """Best sellers by quantity across all order line items."""
        quantity = sa_func.sum(OrderLineItem.quantity)
        rows = (
            db.query(
                OrderLineItem.product_id,
                quantity.label("quantity_sold"),
                sa_func.coalesce(sa_func.sum(OrderLineItem.total), 0).label("revenue"),
                sa_func.count(sa_func.distinct(OrderLineItem.order_id)).label("order_count"),
            )
            .filter(OrderLineItem.product_id.isnot(None))
            .group_by(OrderLineItem.product_id)
            .order_by(quantity.desc(), OrderLineItem.product_id)
            .limit(limit)
            .all()
        )

        ids = [r.product_id for r in rows]
        products = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()} if ids else {}

        result = []
        for r in rows:
            product = products.get(r.product_id)
            result.append({
                "product": {
                    "id": product.id,
                    "name": product.name,
                    "slug": product.slug,
                    "price": money_str(product.price),
                    "primary_image_url": product.primary_image_url,
                } if product else None,
                "quantity_sold": int(r.quantity_sold or 0),
                "revenue": money_str(r.revenue),
                "order_count": r.order_count,
            })
        return result

    def get_daily_revenue(self, db: Session, days: int = 30) -> List[Dict[str, Any]]:
        """Paid revenue per calendar day for the chart (last N days)."""
        start = now_utc() - timedelta(days=days)

        rows = (
            db.query(Order.created_at, Order.total_amount)
            .filter(
                Order.financial_status == FinancialStatus.PAID.value,
                Order.created_at >= start,
            )
            .order_by(Order.created_at)
            .all()
        )

        # Grouped in Python: date casts differ between SQLite and PostgreSQL
        buckets = OrderedDict()
        for created_at, amount in rows:
            day = created_at.date().isoformat()
            entry = buckets.setdefault(day, {"count": 0, "revenue": to_money(0)})
            entry["count"] += 1
            entry["revenue"] = to_money(entry["revenue"] + to_money(amount))

        return [
            {"date": day, "count": v["count"], "revenue": money_str(v["revenue"])}
            for day, v in buckets.items()
        ]


dashboard_service = DashboardService()
