"""
Customer Module - Address Book Service
========================================
CRUD scoped to the owning user. Marking an address default clears the flag
on the user's other addresses of the same type.
"""

from typing import List

from sqlalchemy.orm import Session

from config.database import atomic
from common.exceptions import NotFoundError, AuthorizationError
from modules.customer.address_models import Address


class AddressService:

    def list_for_user(self, db: Session, user_id: int) -> List[Address]:
        return (
            db.query(Address)
            .filter(Address.user_id == user_id)
            .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
            .all()
        )

    def get_owned(self, db: Session, user_id: int, address_id: int) -> Address:
        address = db.query(Address).filter(Address.id == address_id).first()
        if not address:
            raise NotFoundError("Address not found.")
        if address.user_id != user_id:
            raise AuthorizationError("You do not have access to this address.")
        return address

    def create(self, db: Session, user_id: int, data: dict) -> Address:
        with atomic(db):
            address = Address(user_id=user_id, **data)
            if address.is_default:
                self._clear_default(db, user_id, address.type)
            db.add(address)
            db.flush()
        return address

    def update(self, db: Session, user_id: int, address_id: int, changes: dict) -> Address:
        with atomic(db):
            address = self.get_owned(db, user_id, address_id)
            for field, value in changes.items():
                setattr(address, field, value)
            if address.is_default:
                self._clear_default(db, user_id, address.type, keep_id=address.id)
        return address

    def delete(self, db: Session, user_id: int, address_id: int):
        with atomic(db):
            db.delete(self.get_owned(db, user_id, address_id))

    def _clear_default(self, db: Session, user_id: int, address_type: str, keep_id: int = None):
        q = db.query(Address).filter(
            Address.user_id == user_id,
            Address.type == address_type,
            Address.is_default == True,
        )
        if keep_id is not None:
            q = q.filter(Address.id != keep_id)
        q.update({Address.is_default: False}, synchronize_session=False)


def address_to_dict(a: Address) -> dict:
    return {
        "id": a.id,
        "user_id": a.user_id,
        "type": a.type,
        "company": a.company,
        "address_line_1": a.address_line_1,
        "city": a.city,
        "state": a.state,
        "postal_code": a.postal_code,
        "country": a.country,
        "is_default": a.is_default,
        "created_at": a.created_at.isoformat() if a.created_at else None,
    }


# Singleton
address_service = AddressService()
