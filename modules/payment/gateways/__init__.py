"""
Payment Gateway Abstraction
=============================
Each gateway implements create_checkout_session(), retrieve_session() and
verify_event(). Registry pattern for gateway lookup by name; the active one
is chosen by settings.PAYMENT_GATEWAY.
"""

import logging
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

logger = logging.getLogger("storefront.gateway")


@dataclass
class CheckoutLineItem:
    """One hosted-checkout line. unit_amount is in minor currency units (cents)."""
    name: str
    unit_amount: int
    quantity: int
    description: str = ""


@dataclass
class CheckoutSessionRequest:
    """Input for creating a hosted checkout session."""
    line_items: List[CheckoutLineItem]
    currency: str
    success_url: str
    cancel_url: str
    metadata: Dict[str, str]          # correlation ids echoed back on settlement
    customer_email: Optional[str] = None


@dataclass
class GatewaySession:
    """Gateway-agnostic view of a checkout session."""
    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None
    amount_total: Optional[int] = None   # minor units
    currency: Optional[str] = None
    payment_intent: Optional[str] = None
    payment_method: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class GatewaySessionResult:
    """Result of create_checkout_session() / retrieve_session()."""
    success: bool
    session: Optional[GatewaySession] = None
    error_message: Optional[str] = None
    not_found: bool = False


@dataclass
class GatewayEvent:
    """An authenticated webhook event."""
    id: str
    type: str
    data_object: Dict[str, Any]


class BaseGateway:
    """Abstract gateway interface."""
    name: str = ""
    label: str = ""

    def create_checkout_session(self, req: CheckoutSessionRequest) -> GatewaySessionResult:
        raise NotImplementedError

    def retrieve_session(self, session_id: str) -> GatewaySessionResult:
        raise NotImplementedError

    def verify_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        """Authenticate the raw payload. Raises InvalidSignatureError."""
        raise NotImplementedError

    def parse_session(self, data_object: Dict[str, Any]) -> GatewaySession:
        """Session carried inside a verified event."""
        raise NotImplementedError


# ── Registry ──

_GATEWAYS: Dict[str, BaseGateway] = {}


def register_gateway(gw: BaseGateway):
    _GATEWAYS[gw.name] = gw


def get_gateway(name: str) -> Optional[BaseGateway]:
    return _GATEWAYS.get(name)

