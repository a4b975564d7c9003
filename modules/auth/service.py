"""
Auth Module - Service Layer
=============================
Business logic for registration, login, profile and password changes.
"""

import logging
from typing import Tuple

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from common.exceptions import AuthenticationError, BadRequestError, DuplicateError
from common.security import hash_password, check_password, create_token
from config.database import atomic
from modules.user.models import User, UserRole

logger = logging.getLogger("storefront.auth")


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "date_of_birth": user.date_of_birth.isoformat() if user.date_of_birth else None,
        "role": getattr(user.role, "value", user.role),
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class AuthService:
    """Handles account creation, credential checks and token issuing."""

    def register(
        self, db: Session, email: str, password: str,
        first_name: str, last_name: str = "",
    ) -> User:
        """Create a USER account. Duplicate email -> DuplicateError."""
        email = email.strip().lower()
        if db.query(User.id).filter(User.email == email).first():
            raise DuplicateError("User with this email already exists.")

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name or "",
            role=UserRole.USER.value,
        )
        try:
            with atomic(db):
                db.add(user)
        except IntegrityError:
            # Concurrent registration with the same email won the unique index
            raise DuplicateError("User with this email already exists.")

        db.refresh(user)
        logger.info(f"User registered: id={user.id} email={user.email}")
        return user

    def login(self, db: Session, email: str, password: str) -> Tuple[User, str]:
        """Verify credentials. Returns (user, bearer_token)."""
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or not check_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password.")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated.")
        return user, create_token(user)

    def update_profile(self, db: Session, user: User, changes: dict) -> User:
        allowed = {"first_name", "last_name", "phone", "date_of_birth"}
        with atomic(db):
            for field, value in changes.items():
                if field in allowed:
                    setattr(user, field, value)
        db.refresh(user)
        return user

    def change_password(
        self, db: Session, user: User,
        current_password: str, new_password: str, confirm_password: str,
    ):
        if new_password != confirm_password:
            raise BadRequestError("New passwords do not match.")
        if not check_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect.")
        if check_password(new_password, user.password_hash):
            raise BadRequestError("New password must differ from the current one.")
        with atomic(db):
            user.password_hash = hash_password(new_password)
        logger.info(f"Password changed for user {user.id}")


# Singleton
auth_service = AuthService()
