"""
Order Module - Models
======================
Order with a frozen line-item snapshot and the gateway transactions that
paid for it.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Text,
    ForeignKey, DateTime,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class FinancialStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    VOIDED = "voided"


class FulfillmentStatus(str, enum.Enum):
    UNFULFILLED = "unfulfilled"
    PARTIAL = "partial"
    FULFILLED = "fulfilled"
    RETURNED = "returned"


# Forward-only lifecycle; delivered and cancelled are terminal.
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String, nullable=False)

    status = Column(String, default=OrderStatus.PENDING.value, nullable=False, index=True)
    financial_status = Column(String, default=FinancialStatus.PENDING.value, nullable=False, index=True)
    fulfillment_status = Column(String, default=FulfillmentStatus.UNFULFILLED.value, nullable=False)

    # Totals (Decimal, never float)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), default=0, nullable=False)
    shipping_amount = Column(Numeric(10, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)

    # Checkout metadata
    shipping_address = Column(Text, nullable=True)
    payment_method = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    line_items = relationship(
        "OrderLineItem", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderLineItem.id",
    )
    transactions = relationship(
        "OrderTransaction", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderTransaction.id",
    )

    @property
    def is_paid(self) -> bool:
        return self.financial_status == FinancialStatus.PAID

    def __repr__(self):
        return f"<Order {self.order_number} {self.status}/{self.financial_status}>"


class OrderLineItem(Base):
    """Copy of product/variant identity and price at order time. Written once."""
    __tablename__ = "order_line_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)

    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)   # unit price at purchase
    total = Column(Numeric(10, 2), nullable=False)   # price * quantity
    title = Column(String, nullable=False)
    variant_title = Column(String, nullable=True)
    sku = Column(String, nullable=True)

    order = relationship("Order", back_populates="line_items")
    product = relationship("Product")
    variant = relationship("ProductVariant")


class OrderTransaction(Base):
    """One payment event reported by the external gateway."""
    __tablename__ = "order_transactions"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    gateway = Column(String, nullable=False)
    gateway_id = Column(String(255), unique=True, nullable=False)          # payment intent (or session) id
    gateway_session_id = Column(String(255), unique=True, nullable=True)   # idempotency key for settlement
    gateway_event_id = Column(String(255), nullable=True)
    object_type = Column(String, nullable=False)
    status = Column(String, nullable=False)
    payment_method = Column(String, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)
    fee_amount = Column(Numeric(10, 2), default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="transactions")
