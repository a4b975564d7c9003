"""
Payment Routes
================
Hosted checkout session, gateway webhook (raw body) and session status.
"""

from fastapi import APIRouter, Request, Depends, Header
from pydantic import Field
from sqlalchemy.orm import Session
from typing import Optional

from config.database import get_db
from common.schemas import ApiModel
from modules.auth.deps import require_login
from modules.payment.service import payment_service

router = APIRouter(prefix="/payment", tags=["payment"])


class CheckoutSessionRequestBody(ApiModel):
    cart_id: int = Field(..., gt=0)


@router.post("/checkout-session")
async def create_checkout_session(
    body: CheckoutSessionRequestBody,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    session = payment_service.create_checkout_session(db, me, body.cart_id)
    return {"sessionId": session.id, "url": session.url}


@router.post("/webhook")
async def gateway_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Unauthenticated; the signature over the exact raw bytes is the credential."""
    raw_body = await request.body()
    return payment_service.handle_gateway_event(db, raw_body, stripe_signature)


@router.get("/session/{session_id}")
async def session_status(
    session_id: str,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    return payment_service.get_session_status(db, me, session_id)
