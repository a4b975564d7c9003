"""
Auth Module - Routes
=====================
Account endpoints under /users: register, login, profile, password.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import ApiModel, EMAIL_PATTERN
from modules.auth.deps import require_login
from modules.auth.service import auth_service, user_to_dict

router = APIRouter(prefix="/users", tags=["users"])


# ==========================================
# Schemas
# ==========================================

class RegisterRequest(ApiModel):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(ApiModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class ProfileUpdateRequest(ApiModel):
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    date_of_birth: Optional[date] = None


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str = Field(..., min_length=8, max_length=128)


# ==========================================
# Endpoints
# ==========================================

@router.post("/register")
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = auth_service.register(
        db, body.email, body.password, body.first_name, body.last_name or "",
    )
    return JSONResponse({"message": "User registered successfully", "user": user_to_dict(user)}, status_code=201)


@router.post("/login")
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    user, token = auth_service.login(db, body.email, body.password)
    return {"message": "Login successful", "token": token, "user": user_to_dict(user)}


@router.get("/profile")
async def get_profile(me=Depends(require_login)):
    return user_to_dict(me)


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    user = auth_service.update_profile(db, me, body.changes())
    return {"message": "Profile updated", "user": user_to_dict(user)}


@router.put("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    auth_service.change_password(
        db, me, body.current_password, body.new_password, body.confirm_password,
    )
    return {"message": "Password changed successfully"}
