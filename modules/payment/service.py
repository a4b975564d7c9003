"""
Payment Service
=================
Hosted checkout sessions and webhook-driven settlement.
Active gateway is selected via settings.PAYMENT_GATEWAY.

A checkout session writes nothing locally; the order exists only once the
gateway confirms capture and settle_checkout_session() commits it.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from config import settings
from config.database import atomic
from common.exceptions import (
    NotFoundError, AuthorizationError, ConflictError, AmountMismatchError,
    EmptyCartError, InsufficientStockError, PaymentError,
)
from common.helpers import (
    safe_int, sum_lines, to_minor_units, from_minor_units, money_str,
)
from modules.admin.permissions import is_allowed
from modules.cart.models import Cart, CartStatus
from modules.order.models import (
    Order, OrderTransaction, OrderStatus, FinancialStatus,
)
from modules.order.service import order_service, compute_totals
from modules.user.models import User

# Import gateway modules to trigger register_gateway() calls
from modules.payment.gateways import (  # noqa: F401
    get_gateway, BaseGateway, CheckoutLineItem, CheckoutSessionRequest, GatewaySession,
)
import modules.payment.gateways.stripe_gateway  # noqa: F401

logger = logging.getLogger("storefront.payment")

EVENT_SESSION_COMPLETED = "checkout.session.completed"
EVENT_SESSION_EXPIRED = "checkout.session.expired"


class PaymentService:

    # ==========================================
    # Gateway Selection
    # ==========================================

    def active_gateway(self) -> BaseGateway:
        gateway = get_gateway(settings.PAYMENT_GATEWAY)
        if not gateway:
            logger.error(f"Configured payment gateway '{settings.PAYMENT_GATEWAY}' is not registered")
            raise PaymentError("Payment gateway is not available.")
        return gateway

    # ==========================================
    # Checkout Session
    # ==========================================

    def create_checkout_session(self, db: Session, user: User, cart_id: int) -> GatewaySession:
        """
        Validate the caller's cart, pre-check stock (advisory, nothing is
        reserved) and open a hosted session carrying user_id/cart_id metadata.
        """
        cart = db.query(Cart).filter(Cart.id == cart_id).first()
        if not cart:
            raise NotFoundError("Cart not found.")
        if cart.user_id != user.id:
            raise AuthorizationError("Access denied: this cart does not belong to you.")
        if cart.status != CartStatus.ACTIVE.value:
            raise ConflictError("Cart has already been checked out.")

        items = list(cart.items)
        if not items:
            raise EmptyCartError()

        line_items = []
        for item in items:
            variant = item.variant
            if variant is None or variant.stock < item.quantity:
                raise InsufficientStockError(
                    item.product.name if item.product else "",
                    variant.label if variant else "",
                )
            line_items.append(CheckoutLineItem(
                name=item.product.name,
                description=variant.label,
                unit_amount=to_minor_units(item.item_price),
                quantity=item.quantity,
            ))

        totals = compute_totals(sum_lines((i.item_price, i.quantity) for i in items))
        if totals["tax"] > 0:
            line_items.append(CheckoutLineItem(name="Tax", unit_amount=to_minor_units(totals["tax"]), quantity=1))
        if totals["shipping"] > 0:
            line_items.append(CheckoutLineItem(name="Shipping", unit_amount=to_minor_units(totals["shipping"]), quantity=1))

        req = CheckoutSessionRequest(
            line_items=line_items,
            currency=settings.CURRENCY,
            success_url=f"{settings.FRONTEND_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.FRONTEND_URL}/checkout/cancel",
            metadata={"user_id": str(user.id), "cart_id": str(cart.id)},
            customer_email=user.email,
        )
        result = self.active_gateway().create_checkout_session(req)
        if not result.success:
            raise PaymentError(result.error_message or "Failed to create payment session.")

        logger.info(
            f"Checkout session {result.session.id} for cart {cart.id} "
            f"(user {user.id}, total={money_str(totals['total'])})"
        )
        return result.session

    def get_session_status(self, db: Session, user: User, session_id: str) -> dict:
        """Proxy the gateway's view of a session, scoped to its owner (or order staff)."""
        result = self.active_gateway().retrieve_session(session_id)
        if not result.success:
            if result.not_found:
                raise NotFoundError("Payment session not found.")
            raise PaymentError(result.error_message or "Failed to retrieve payment session.")

        session = result.session
        owner_id = safe_int(session.metadata.get("user_id"))
        if owner_id is not None and owner_id != user.id and not is_allowed(user.role, "orders"):
            raise AuthorizationError("Access denied: this payment session does not belong to you.")

        tx = db.query(OrderTransaction).filter(
            OrderTransaction.gateway_session_id == session.id,
        ).first()

        return {
            "id": session.id,
            "status": session.payment_status,
            "session_status": session.status,
            "customer_email": session.customer_email,
            "amount_total": money_str(from_minor_units(session.amount_total))
            if session.amount_total is not None else None,
            "currency": session.currency,
            "payment_intent": session.payment_intent,
            "order": {"id": tx.order.id, "order_number": tx.order.order_number} if tx else None,
        }

    # ==========================================
    # Webhook
    # ==========================================

    def handle_gateway_event(self, db: Session, raw_body: bytes, signature: Optional[str]) -> dict:
        """
        Authenticate and dispatch one gateway event. InvalidSignatureError
        propagates before any storage access; business aborts are logged and
        acknowledged; anything unexpected propagates so the gateway retries.
        """
        gateway = self.active_gateway()
        event = gateway.verify_event(raw_body, signature)
        logger.info(f"Webhook received: {event.type} ({event.id})")

        if event.type == EVENT_SESSION_COMPLETED:
            session = gateway.parse_session(event.data_object)
            self.settle_checkout_session(db, session, event_id=event.id, gateway_name=gateway.name)
        elif event.type == EVENT_SESSION_EXPIRED:
            logger.info(f"Checkout session expired: {event.data_object.get('id')}. No action taken.")
        else:
            logger.info(f"Unhandled webhook event type: {event.type}")

        return {"received": True}

    def _settled_order(self, db: Session, session_id: str) -> Optional[Order]:
        tx = db.query(OrderTransaction).filter(
            OrderTransaction.gateway_session_id == session_id,
        ).first()
        return tx.order if tx else None

    def _needs_intervention(self, session: GatewaySession, cart_id, user_id, reason: str):
        logger.critical(
            f"Session {session.id} (cart {cart_id}, user {user_id}): payment captured but {reason}; "
            f"order not created. Manual intervention required (refund or fulfil by hand)."
        )

    def settle_checkout_session(
        self, db: Session, session: GatewaySession,
        event_id: Optional[str] = None, gateway_name: str = "stripe",
    ) -> Optional[Order]:
        """
        Turn a captured session into a paid order, once.

        One transaction: atomic stock decrement per item, order + frozen lines,
        one OrderTransaction keyed by the session id, cart emptied and marked
        CHECKED_OUT. A captured amount that differs from the rebuilt order
        total rolls the whole unit back. Returns the order, or None when the
        session was already settled or the settlement was aborted (logged).
        """
        existing = self._settled_order(db, session.id)
        if existing:
            logger.info(f"Session {session.id} already settled as order {existing.order_number}; skipping")
            return None

        user_id = safe_int(session.metadata.get("user_id"))
        cart_id = safe_int(session.metadata.get("cart_id"))
        if cart_id is None:
            self._needs_intervention(session, cart_id, user_id, "session carries no cart_id metadata")
            return None

        try:
            with atomic(db):
                cart = db.query(Cart).filter(Cart.id == cart_id).with_for_update().first()
                if not cart:
                    self._needs_intervention(session, cart_id, user_id, "cart not found")
                    return None
                if user_id is None or cart.user_id != user_id:
                    self._needs_intervention(
                        session, cart_id, user_id, f"cart belongs to user {cart.user_id}",
                    )
                    return None
                if cart.status != CartStatus.ACTIVE.value:
                    self._needs_intervention(
                        session, cart_id, user_id, f"cart was already converted (status {cart.status})",
                    )
                    return None
                items = list(cart.items)
                if not items:
                    self._needs_intervention(session, cart_id, user_id, "cart is empty")
                    return None

                order_service.deduct_stock_for_items(db, items)

                user = db.query(User).filter(User.id == cart.user_id).first()
                order = order_service.build_order(
                    db,
                    user_id=cart.user_id,
                    email=(user.email if user else None) or session.customer_email or "",
                    items=items,
                    status=OrderStatus.PROCESSING.value,
                    financial_status=FinancialStatus.PAID.value,
                    payment_method=session.payment_method or "card",
                )
                if session.amount_total is not None and to_minor_units(order.total_amount) != session.amount_total:
                    raise AmountMismatchError(
                        money_str(from_minor_units(session.amount_total)), money_str(order.total_amount),
                    )

                amount = (
                    from_minor_units(session.amount_total)
                    if session.amount_total is not None else order.total_amount
                )
                db.add(OrderTransaction(
                    order_id=order.id,
                    gateway=gateway_name,
                    gateway_id=session.payment_intent or session.id,
                    gateway_session_id=session.id,
                    gateway_event_id=event_id,
                    object_type="checkout.session",
                    status="succeeded",
                    payment_method=session.payment_method or "card",
                    amount=amount,
                    currency=(session.currency or settings.CURRENCY).upper(),
                ))
                db.flush()

                order_service.convert_cart(db, cart, order, CartStatus.CHECKED_OUT.value)

        except InsufficientStockError as e:
            logger.critical(
                f"Session {session.id} (cart {cart_id}, user {user_id}): payment captured but "
                f"{e.message} Settlement rolled back; manual intervention required (refund or restock)."
            )
            return None
        except AmountMismatchError as e:
            self._needs_intervention(
                session, cart_id, user_id,
                f"captured amount {e.captured} does not match the order total {e.expected}",
            )
            return None
        except ConflictError:
            logger.critical(
                f"Session {session.id}: cart {cart_id} was already converted; payment captured "
                f"without an order. Manual intervention required."
            )
            return None
        except IntegrityError:
            # A concurrent delivery of the same event committed first
            existing = self._settled_order(db, session.id)
            if existing:
                logger.info(f"Session {session.id} settled concurrently as order {existing.order_number}")
                return None
            raise

        logger.info(
            f"Settled session {session.id}: order {order.order_number} "
            f"(cart {cart_id}, user {user_id}, total={money_str(order.total_amount)})"
        )
        return order


# Singleton
payment_service = PaymentService()
