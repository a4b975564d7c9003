"""
Address Routes
================
Customer address book CRUD. Another user's address is 403.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import ApiModel
from modules.auth.deps import require_login
from modules.customer.address_models import AddressType
from modules.customer.address_service import address_service, address_to_dict

router = APIRouter(prefix="/addresses", tags=["addresses"])


class AddressCreate(ApiModel):
    type: AddressType
    company: Optional[str] = Field(None, max_length=200)
    address_line_1: str = Field(..., min_length=5, max_length=200)
    city: str = Field(..., min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=100)
    postal_code: str = Field(..., min_length=2, max_length=20)
    country: str = Field("Portugal", min_length=2, max_length=100)
    is_default: bool = False


class AddressUpdate(ApiModel):
    type: Optional[AddressType] = None
    company: Optional[str] = Field(None, max_length=200)
    address_line_1: Optional[str] = Field(None, min_length=5, max_length=200)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=100)
    postal_code: Optional[str] = Field(None, min_length=2, max_length=20)
    country: Optional[str] = Field(None, min_length=2, max_length=100)
    is_default: Optional[bool] = None


@router.get("")
async def list_addresses(db: Session = Depends(get_db), me=Depends(require_login)):
    return [address_to_dict(a) for a in address_service.list_for_user(db, me.id)]


@router.post("")
async def create_address(body: AddressCreate, db: Session = Depends(get_db), me=Depends(require_login)):
    address = address_service.create(db, me.id, body.model_dump(mode="json"))
    return JSONResponse(address_to_dict(address), status_code=201)


@router.get("/{address_id}")
async def get_address(address_id: int, db: Session = Depends(get_db), me=Depends(require_login)):
    return address_to_dict(address_service.get_owned(db, me.id, address_id))


@router.put("/{address_id}")
async def update_address(
    address_id: int,
    body: AddressUpdate,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    changes = body.model_dump(mode="json", exclude_unset=True)
    return address_to_dict(address_service.update(db, me.id, address_id, changes))


@router.delete("/{address_id}", status_code=204)
async def delete_address(address_id: int, db: Session = Depends(get_db), me=Depends(require_login)):
    address_service.delete(db, me.id, address_id)
    return Response(status_code=204)
