"""
Razorpay Gateway
=================
Orders API over REST/JSON with basic auth (key id / key secret).
Checkout happens client-side; the callback carries a signature over
"{razorpay_order_id}|{razorpay_payment_id}". Webhooks are signed over
the raw body with a separate webhook secret.
"""

import json
import logging
from typing import Dict, Any

import httpx

from common.security import hmac_sha256_hex, verify_signature
from config.settings import RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, RAZORPAY_WEBHOOK_SECRET
from modules.payment.gateways import (
    BaseGateway, GatewayPaymentRequest, GatewayCreateResult,
    GatewayVerifyResult, GatewayWebhookEvent, register_gateway,
)

logger = logging.getLogger("cafepreorder.gateway.razorpay")

RAZORPAY_ORDERS_URL = "https://api.razorpay.com/v1/orders"


class RazorpayGateway(BaseGateway):
    name = "razorpay"
    label = "Razorpay"
    capture_events = ("payment.captured", "order.paid")

    def __init__(self, key_id: str = RAZORPAY_KEY_ID, key_secret: str = RAZORPAY_KEY_SECRET,
                 webhook_secret: str = RAZORPAY_WEBHOOK_SECRET, transport=None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.transport = transport

    def create_payment(self, req: GatewayPaymentRequest) -> GatewayCreateResult:
        if not self.key_id or not self.key_secret:
            return GatewayCreateResult(success=False, error_message="Razorpay is not configured.")
        try:
            with httpx.Client(transport=self.transport, timeout=15) as client:
                resp = client.post(RAZORPAY_ORDERS_URL, auth=(self.key_id, self.key_secret), json={
                    "amount": req.amount_minor,
                    "currency": req.currency,
                    "receipt": f"order_{req.order_ref}",
                    "notes": {"order_id": req.order_ref},
                })
            data = resp.json()
            logger.info(f"Razorpay create [{req.order_ref}]: HTTP {resp.status_code} {data.get('id')}")

            if resp.status_code == 200 and data.get("id"):
                return GatewayCreateResult(
                    success=True,
                    gateway_order_id=data["id"],
                    checkout={
                        "key": self.key_id,
                        "order_id": data["id"],
                        "amount": req.amount_minor,
                        "currency": req.currency,
                        "description": req.description,
                        "prefill": {"email": req.customer_email},
                    },
                )
            msg = (data.get("error") or {}).get("description") or f"HTTP {resp.status_code}"
            return GatewayCreateResult(success=False, error_message=f"Gateway error: {msg}")

        except httpx.TimeoutException:
            return GatewayCreateResult(success=False, error_message="Gateway did not respond. Please retry.")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Razorpay create failed: {e}")
            return GatewayCreateResult(success=False, error_message=f"Could not reach the gateway: {e}")

    def verify_payment(self, params: Dict[str, Any]) -> GatewayVerifyResult:
        if params.get("status") == "cancelled":
            return GatewayVerifyResult(success=False, aborted=True, error_message="Payment was cancelled.")

        rp_order_id = params.get("razorpay_order_id", "")
        rp_payment_id = params.get("razorpay_payment_id", "")
        signature = params.get("razorpay_signature", "")
        if not rp_order_id or not rp_payment_id:
            return GatewayVerifyResult(success=False, error_message="Incomplete payment response.")

        expected_order = params.get("expected_gateway_order_id")
        if expected_order and expected_order != rp_order_id:
            logger.warning(f"Razorpay verify: order mismatch {rp_order_id} != {expected_order}")
            return GatewayVerifyResult(success=False, error_message="Payment does not belong to this order.")

        message = f"{rp_order_id}|{rp_payment_id}".encode()
        if not verify_signature(self.key_secret, message, signature):
            logger.warning(f"Razorpay verify: bad signature for {rp_payment_id}")
            return GatewayVerifyResult(success=False, error_message="Payment signature mismatch.")

        return GatewayVerifyResult(success=True, ref_number=rp_payment_id)

    def parse_webhook(self, raw_body: bytes, signature: str) -> GatewayWebhookEvent:
        if not verify_signature(self.webhook_secret, raw_body, signature):
            return GatewayWebhookEvent(valid=False, error_message="Invalid webhook signature.")
        try:
            data = json.loads(raw_body)
        except ValueError:
            return GatewayWebhookEvent(valid=False, error_message="Malformed webhook body.")

        payment = ((data.get("payload") or {}).get("payment") or {}).get("entity") or {}
        return GatewayWebhookEvent(
            valid=True,
            event=data.get("event", ""),
            gateway_order_id=payment.get("order_id"),
            order_ref=(payment.get("notes") or {}).get("order_id"),
            ref_number=payment.get("id"),
        )

    def sign_callback(self, rp_order_id: str, rp_payment_id: str) -> str:
        """Signature the hosted checkout attaches to a successful callback."""
        return hmac_sha256_hex(self.key_secret, f"{rp_order_id}|{rp_payment_id}".encode())


register_gateway(RazorpayGateway())
