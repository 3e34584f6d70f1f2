# backend/routes/payments.py
import json
import logging
from fastapi import APIRouter, Request, Depends, HTTPException, Header
from sqlalchemy.orm import Session

from database import get_db
from models.order import Order
from models.webhook_log import WebhookLog
from services import payments
from services.errors import CheckoutError
from services.notifications import get_notification_sink
from utils.audit import write_log_safely
from utils.razorpay_client import get_payment_gateway

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = logging.getLogger(__name__)

def _order_from_notes(db: Session, entity: dict):
    notes = entity.get("notes") or {}
    order_id = notes.get("order_id")
    if order_id and str(order_id).isdigit():
        return db.query(Order).filter(Order.id == int(order_id)).first()
    return None

def _order_for_payment(db: Session, payment: dict):
    # Orders are matched by the gateway order id, falling back to the id we put in notes
    gateway_order_id = payment.get("order_id")
    if gateway_order_id:
        order = db.query(Order).filter(Order.gateway_order_id == gateway_order_id).first()
        if order:
            return order
    return _order_from_notes(db, payment)

def _order_for_refund(db: Session, refund: dict):
    payment_id = refund.get("payment_id")
    if payment_id:
        order = db.query(Order).filter(Order.gateway_payment_id == payment_id).first()
        if order:
            return order
    return _order_from_notes(db, refund)

@router.post("/webhook")
async def gateway_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway = Depends(get_payment_gateway),
    sink = Depends(get_notification_sink),
    signature: str = Header(None, alias="X-Razorpay-Signature"),
):
    if signature is None:
        raise HTTPException(status_code=400, detail="Missing X-Razorpay-Signature header")

    body = await request.body()
    body_text = body.decode("utf-8", errors="replace")
    logger.info("Gateway webhook received. body_preview=%s", body_text[:500])

    if not gateway.verify_webhook(body, signature):
        logger.warning("Gateway webhook signature verification failed")
        db.add(WebhookLog(provider="RAZORPAY", event="SIGNATURE_FAILED",
                          payload={"body": body_text[:500]}, status="FAILED"))
        db.commit()
        raise HTTPException(status_code=400, detail="Signature verification failed")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    event_name = event.get("event", "")
    webhook_log = WebhookLog(provider="RAZORPAY", event=event_name, payload=event, status="PENDING")
    db.add(webhook_log)
    db.commit()
    db.refresh(webhook_log)
    log_id = webhook_log.id

    event_payload = event.get("payload") or {}
    payment = (event_payload.get("payment") or {}).get("entity") or {}
    refund = (event_payload.get("refund") or {}).get("entity") or {}
    outcome = "IGNORED"
    error = None
    try:
        if event_name in ("payment.captured", "payment.failed"):
            order = _order_for_payment(db, payment)
            if not order:
                outcome, error = "FAILED", "Order not found"
            elif event_name == "payment.captured":
                payments.mark_paid(db, order.id, payment.get("id"), notifier=sink)
                outcome = "SUCCESS"
            else:
                # A failed attempt can be retried on the same gateway order, the reservation stays
                reason = payment.get("error_description") or "Payment could not be processed."
                payments.record_failed_attempt(db, order.id, reason=reason, notifier=sink)
                outcome = "SUCCESS"
        elif event_name == "refund.created":
            order = _order_for_refund(db, refund)
            if not order:
                outcome, error = "FAILED", "Order not found"
            else:
                payments.record_gateway_refund(db, order.id, (refund.get("amount") or 0) / 100.0, notifier=sink)
                outcome = "SUCCESS"
        else:
            logger.info("Unhandled gateway event: %s", event_name)
    except CheckoutError as e:
        # Late or duplicate deliveries end here, acknowledge them so the gateway stops retrying
        outcome, error = "FAILED", e.code
        logger.warning("Gateway webhook %s not applied: %s", event_name, e.code)

    webhook_log = db.query(WebhookLog).filter(WebhookLog.id == log_id).first()
    webhook_log.status = outcome
    webhook_log.error = error
    db.commit()

    write_log_safely(db, user_id=None, action="PAYMENT_WEBHOOK", resource="payments", status=outcome,
                     ip=request.client.host if request.client else None,
                     meta={"event": event_name, "payment_id": payment.get("id") or refund.get("payment_id"),
                           "error": error})
    return {"received": True}
