"""
Storefront API - Shared Helpers
================================
Pure utility functions with NO database or module dependencies.
"""

import math
import re
import secrets
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def safe_int(value: Optional[str]) -> Optional[int]:
    """Safely convert a string to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


# ==========================================
# Money
# ==========================================

def to_money(value) -> Decimal:
    """Coerce to a cent-precision Decimal. Floats go through str() to avoid binary noise."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def sum_lines(lines: Iterable) -> Decimal:
    """Exact sum of (price, quantity) pairs."""
    return to_money(sum((line_total(p, q) for p, q in lines), Decimal("0.00")))


def to_minor_units(amount) -> int:
    """Decimal euros -> integer cents, as payment gateways expect."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return to_money(Decimal(int(amount)) / 100)


def money_str(value) -> Optional[str]:
    """JSON representation for money: fixed two-decimal string."""
    if value is None:
        return None
    return str(to_money(value))


# ==========================================
# Pagination
# ==========================================

def page_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


# ==========================================
# Slugs & Codes
# ==========================================

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase ASCII slug ('Air Max 90' -> 'air-max-90')."""
    return _SLUG_STRIP.sub("-", (text or "").lower()).strip("-")


_ORDER_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"  # no O/0/I/1/L


def generate_order_number(length: int = 8) -> str:
    """Human-referenceable order number, e.g. ORD-20260117-7KQ2M9XA."""
    code = "".join(secrets.choice(_ORDER_ALPHABET) for _ in range(length))
    return f"ORD-{now_utc():%Y%m%d}-{code}"


def generate_unique_order_number(db, max_retries: int = 10) -> str:
    """Generate an order number not yet present in the DB (unique index is the final guard)."""
    from modules.order.models import Order
    for _ in range(max_retries):
        number = generate_order_number()
        exists = db.query(Order.id).filter(Order.order_number == number).first()
        if not exists:
            return number
    raise RuntimeError("Failed to generate unique order number after retries")
