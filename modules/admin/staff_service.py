"""
User Administration Service
=============================
Account listing for staff and role changes (OWNER only at the route layer).
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from config.database import atomic
from common.exceptions import BadRequestError, NotFoundError
from modules.user.models import User, UserRole
from modules.admin.permissions import parse_role

logger = logging.getLogger("storefront.admin")

USER_SORT_FIELDS = {
    "created_at": User.created_at,
    "email": User.email,
    "role": User.role,
    "id": User.id,
}


class StaffService:

    def list_users(
        self, db: Session,
        role: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[User], int]:
        if sort_by not in USER_SORT_FIELDS:
            raise BadRequestError(f"Cannot sort users by '{sort_by}'.")

        q = db.query(User)
        if role:
            parsed = parse_role(role)
            if parsed is None:
                raise BadRequestError("Invalid role. Must be USER, ADMIN or OWNER.")
            q = q.filter(User.role == parsed.value)

        total = q.count()
        column = USER_SORT_FIELDS[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()
        users = (
            q.order_by(ordering, User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    def change_role(self, db: Session, actor: User, user_id: int, role: str) -> User:
        new_role = parse_role(role)
        if new_role is None:
            raise BadRequestError("Invalid role. Must be USER, ADMIN or OWNER.")
        if user_id == actor.id:
            raise BadRequestError("You cannot change your own role.")

        with atomic(db):
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found.")
            # There must always be an owner
            if parse_role(user.role) == UserRole.OWNER and new_role != UserRole.OWNER:
                raise BadRequestError("The OWNER role cannot be removed.")
            old_role = user.role
            user.role = new_role.value

        logger.info(f"Role change: user {user.id} {old_role} -> {new_role.value} by {actor.id}")
        return user


staff_service = StaffService()
