"""
Stripe Gateway
===============
Hosted Checkout Sessions. Webhooks are authenticated with the
Stripe-Signature header over the raw request bytes.
"""

import json
import logging
from typing import Optional

import stripe

from config import settings
from common.exceptions import InvalidSignatureError
from modules.payment.gateways import (
    BaseGateway, CheckoutSessionRequest, GatewaySession,
    GatewaySessionResult, GatewayEvent, register_gateway,
)

logger = logging.getLogger("storefront.gateway.stripe")


def _mapping(obj) -> dict:
    if not obj:
        return {}
    return {key: obj[key] for key in obj.keys()}


def session_from_stripe(obj) -> GatewaySession:
    """Build a GatewaySession from a Stripe Session object or its webhook dict."""
    get = obj.get if isinstance(obj, dict) else (lambda key: getattr(obj, key, None))
    details = get("customer_details")
    if details is not None and not isinstance(details, dict):
        details = _mapping(details)
    email = (details or {}).get("email") or get("customer_email")
    payment_intent = get("payment_intent")
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = payment_intent["id"]
    method_types = get("payment_method_types") or []
    return GatewaySession(
        id=get("id"),
        url=get("url"),
        status=get("status"),
        payment_status=get("payment_status"),
        customer_email=email,
        amount_total=get("amount_total"),
        currency=get("currency"),
        payment_intent=payment_intent,
        payment_method=method_types[0] if method_types else None,
        metadata={k: str(v) for k, v in _mapping(get("metadata")).items()},
    )


class StripeGateway(BaseGateway):
    name = "stripe"
    label = "Stripe"

    def create_checkout_session(self, req: CheckoutSessionRequest) -> GatewaySessionResult:
        line_items = []
        for li in req.line_items:
            product_data = {"name": li.name}
            if li.description:
                product_data["description"] = li.description
            line_items.append({
                "price_data": {
                    "currency": req.currency,
                    "product_data": product_data,
                    "unit_amount": li.unit_amount,
                },
                "quantity": li.quantity,
            })

        params = dict(
            mode="payment",
            payment_method_types=["card"],
            line_items=line_items,
            success_url=req.success_url,
            cancel_url=req.cancel_url,
            metadata=req.metadata,
        )
        if req.customer_email:
            params["customer_email"] = req.customer_email

        try:
            session = stripe.checkout.Session.create(api_key=settings.STRIPE_SECRET_KEY, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe create session failed [{req.metadata}]: {type(e).__name__}: {e}")
            return GatewaySessionResult(success=False, error_message="Payment gateway unavailable. Try again.")

        logger.info(f"Stripe session created: {session.id} [{req.metadata}]")
        return GatewaySessionResult(success=True, session=session_from_stripe(session))

    def retrieve_session(self, session_id: str) -> GatewaySessionResult:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=settings.STRIPE_SECRET_KEY)
        except stripe.InvalidRequestError as e:
            logger.info(f"Stripe session lookup failed [{session_id}]: {e}")
            return GatewaySessionResult(success=False, error_message="Checkout session not found.", not_found=True)
        except stripe.StripeError as e:
            logger.error(f"Stripe session lookup failed [{session_id}]: {type(e).__name__}: {e}")
            return GatewaySessionResult(success=False, error_message="Payment gateway unavailable. Try again.")
        return GatewaySessionResult(success=True, session=session_from_stripe(session))

    def parse_session(self, data_object: dict) -> GatewaySession:
        return session_from_stripe(data_object)

    def verify_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
            raise InvalidSignatureError("webhook secret not configured")
        if not signature:
            raise InvalidSignatureError("missing Stripe-Signature header")

        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                text, signature, secret, stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except UnicodeDecodeError:
            raise InvalidSignatureError("payload is not UTF-8")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature rejected: {e}")
            raise InvalidSignatureError(str(e))

        try:
            event = json.loads(text)
        except ValueError:
            raise InvalidSignatureError("payload is not valid JSON")

        return GatewayEvent(
            id=event.get("id", ""),
            type=event.get("type", ""),
            data_object=(event.get("data") or {}).get("object") or {},
        )


register_gateway(StripeGateway())
