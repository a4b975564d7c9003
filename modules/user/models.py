"""
User Module - User Model
=========================
Single users table. Role is a closed enum (USER / ADMIN / OWNER); what a role
may do is decided by modules.admin.permissions, never by comparing strings in
routes.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # === Identity ===
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)

    # === Profile ===
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    phone = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)

    # === Role ===
    role = Column(String, default=UserRole.USER.value, server_default=UserRole.USER.value, nullable=False, index=True)
    is_active = Column(Boolean, default=True, server_default="true", nullable=False)

    # === Audit ===
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # === Relationships ===
    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan")
    wishlist_items = relationship("WishlistItem", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_users_created", "created_at"),
    )

    @property
    def full_name(self) -> str:
        parts = [self.first_name or "", self.last_name or ""]
        return " ".join(p for p in parts if p).strip()

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.OWNER)

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
