"""
Sandbox Gateway
================
Local development and demo gateway. Creating a payment always
succeeds; a callback that echoes the checkout order_id is approved
unless it says otherwise:
    status=failed     -> payment rejected
    status=cancelled  -> customer aborted checkout
"""

import logging
import secrets
from typing import Dict, Any

from modules.payment.gateways import (
    BaseGateway, GatewayPaymentRequest, GatewayCreateResult,
    GatewayVerifyResult, register_gateway,
)

logger = logging.getLogger("cafepreorder.gateway.sandbox")


class SandboxGateway(BaseGateway):
    name = "sandbox"
    label = "Sandbox (test payments)"

    def create_payment(self, req: GatewayPaymentRequest) -> GatewayCreateResult:
        handle = f"sbx_order_{req.order_ref}_{secrets.token_hex(4)}"
        logger.info(f"Sandbox create [{req.order_ref}]: {req.amount_minor} {req.currency}")
        return GatewayCreateResult(
            success=True,
            gateway_order_id=handle,
            checkout={
                "order_id": handle,
                "amount": req.amount_minor,
                "currency": req.currency,
                "callback_url": req.callback_url,
            },
        )

    def verify_payment(self, params: Dict[str, Any]) -> GatewayVerifyResult:
        status = params.get("status", "success")
        if status == "cancelled":
            return GatewayVerifyResult(success=False, aborted=True, error_message="Payment was cancelled.")
        if status == "failed":
            return GatewayVerifyResult(success=False, error_message="Sandbox payment declined.")

        handle = params.get("order_id")
        expected = params.get("expected_gateway_order_id")
        if not expected or handle != expected:
            logger.warning(f"Sandbox verify: checkout mismatch {handle} != {expected}")
            return GatewayVerifyResult(success=False, error_message="Payment does not belong to this order.")

        # Same checkout, same reference: re-delivered callbacks confirm nothing new
        nonce = params.get("payment_id") or expected.rsplit("_", 1)[-1]
        return GatewayVerifyResult(success=True, ref_number=f"SANDBOX-{params.get('order_ref', '')}-{nonce}")


register_gateway(SandboxGateway())
