"""
Payment Routes
================
Gateway checkout, browser callback and server-to-server webhooks.

Endpoints:
  GET  /api/payment/gateways             — Enabled gateways
  POST /api/orders/{id}/payment          — Open checkout for a pending order
  POST /api/payment/{gateway}/callback   — Verify checkout result (JSON body)
  POST /api/payment/{gateway}/webhook    — Signed gateway event (raw body)
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_login
from modules.payment.gateways import get_gateway
from modules.payment.service import payment_service
from modules.user.models import SessionContext

router = APIRouter(tags=["payment"])

SIGNATURE_HEADERS = {
    "razorpay": "X-Razorpay-Signature",
}


class StartPaymentRequest(BaseModel):
    gateway: str


@router.get("/api/payment/gateways")
async def list_gateways(db: Session = Depends(get_db)):
    names = payment_service.get_enabled_gateways(db)
    return {
        "success": True,
        "gateways": [{"name": n, "label": get_gateway(n).label} for n in names],
    }


@router.post("/api/orders/{order_id}/payment")
async def start_payment(
    order_id: int,
    body: StartPaymentRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    data = payment_service.create_gateway_payment(db, ctx, order_id, body.gateway)
    db.commit()
    return {"success": True, **data}


@router.post("/api/payment/{gateway}/callback")
async def payment_callback(
    gateway: str,
    request: Request,
    order_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """The checkout posts its result here; failures are raised, success confirms the order."""
    params: Dict[str, Any] = {}
    if request.headers.get("content-type", "").startswith("application/json"):
        params = await request.json()
    else:
        params = dict(await request.form())
    params.update({k: v for k, v in request.query_params.items() if k != "order_id"})

    order = payment_service.verify_gateway_callback(db, gateway, order_id, params)
    db.commit()
    return {
        "success": True,
        "message": f"Payment received for order #{order.id}.",
        "order": order.to_dict(with_items=False),
    }


@router.post("/api/payment/{gateway}/webhook")
async def payment_webhook(
    gateway: str,
    request: Request,
    db: Session = Depends(get_db),
):
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS.get(gateway, "X-Signature"), "")
    result = payment_service.handle_webhook(db, gateway, raw_body, signature)
    db.commit()
    return {"success": True, **result}
