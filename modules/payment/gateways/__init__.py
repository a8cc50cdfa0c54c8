"""
Payment Gateways
==================
Provider adapters behind one interface: open a checkout, verify the
customer-facing callback and, where the provider pushes events, parse a
signed webhook. Amounts cross this boundary in minor units (paise).
Adapters register themselves by name at import time.
"""

import logging
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

logger = logging.getLogger("cafepreorder.gateway")


@dataclass
class GatewayPaymentRequest:
    """Input for creating a payment."""
    amount_minor: int       # paise
    currency: str
    description: str
    order_ref: str          # our order id as string
    callback_url: str = ""
    customer_email: str = ""


@dataclass
class GatewayCreateResult:
    """Result of create_payment()."""
    success: bool
    gateway_order_id: Optional[str] = None
    checkout: Dict[str, Any] = field(default_factory=dict)   # parameters for the client-side checkout
    error_message: Optional[str] = None


@dataclass
class GatewayVerifyResult:
    """Result of verify_payment()."""
    success: bool
    ref_number: Optional[str] = None
    aborted: bool = False   # customer closed the checkout
    error_message: Optional[str] = None


@dataclass
class GatewayWebhookEvent:
    """Result of parse_webhook()."""
    valid: bool
    event: str = ""
    gateway_order_id: Optional[str] = None
    order_ref: Optional[str] = None
    ref_number: Optional[str] = None
    error_message: Optional[str] = None


class BaseGateway:
    """Abstract gateway interface."""
    name: str = ""
    label: str = ""
    capture_events: tuple = ()

    def create_payment(self, req: GatewayPaymentRequest) -> GatewayCreateResult:
        raise NotImplementedError

    def verify_payment(self, params: Dict[str, Any]) -> GatewayVerifyResult:
        raise NotImplementedError

    def parse_webhook(self, raw_body: bytes, signature: str) -> GatewayWebhookEvent:
        return GatewayWebhookEvent(valid=False, error_message=f"{self.name} does not send webhooks")


# ==========================================
# Registry
# ==========================================

_GATEWAYS: Dict[str, BaseGateway] = {}


def register_gateway(gw: BaseGateway):
    _GATEWAYS[gw.name] = gw


def get_gateway(name: str) -> Optional[BaseGateway]:
    return _GATEWAYS.get(name)


def get_all_gateway_names() -> List[str]:
    return list(_GATEWAYS.keys())
