"""
Customer Address Models
=========================
Billing and shipping address book. At most one default address per
(user, type); the service layer keeps that true.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class AddressType(str, enum.Enum):
    BILLING = "billing"
    SHIPPING = "shipping"


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, default=AddressType.SHIPPING.value, nullable=False)
    company = Column(String, nullable=True)
    address_line_1 = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=True)
    postal_code = Column(String(20), nullable=False)
    country = Column(String, default="Portugal", nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="addresses")

    @property
    def one_line(self) -> str:
        parts = [self.address_line_1, self.postal_code, self.city, self.state, self.country]
        return ", ".join(p for p in parts if p)
