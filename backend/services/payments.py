# backend/services/payments.py
"""Payment settlement for placed orders.

COD and WALLET settle inside the order commit transaction. ONLINE is two
phase: the order is committed PENDING with stock and coupon reserved, a
gateway session is opened, and a later signed confirmation (checkout callback
or webhook) either marks it PAID or rolls the reservation back.
"""
import logging
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from services import cart_store, catalog, coupons, wallet
from services import notifications
from services.errors import (
    GatewayTimeout, PaymentGatewayError, PaymentVerificationFailed,
    OrderNotFound, InvalidOrderState,
)
from utils.clock import utcnow

logger = logging.getLogger(__name__)


# --- Settlement inside the commit transaction ---

def settle_cod(db: Session, order: Order) -> None:
    # Cash is collected at the door, payment stays PENDING until then
    order.status = OrderStatus.CONFIRMED
    order.payment_status = PaymentStatus.PENDING
    order.confirmed_at = utcnow()
    order.add_timeline(OrderStatus.CONFIRMED, "Order Placed", "Your order has been placed. Pay on delivery.")


def settle_wallet(db: Session, order: Order) -> None:
    wallet.debit(
        db, order.user_id, order.total,
        reference_id=order.id,
        description=f"Payment for order #{order.order_number}",
    )
    order.status = OrderStatus.CONFIRMED
    order.payment_status = PaymentStatus.PAID
    order.confirmed_at = utcnow()
    order.add_timeline(OrderStatus.CONFIRMED, "Order Placed", "Paid from wallet. Your order is confirmed.")


def settle_online_reservation(db: Session, order: Order) -> None:
    order.status = OrderStatus.PENDING
    order.payment_status = PaymentStatus.PENDING
    order.add_timeline(OrderStatus.PENDING, "Order Created", "Order created. Awaiting payment.")


SETTLEMENT_HANDLERS = {
    PaymentMethod.COD: settle_cod,
    PaymentMethod.WALLET: settle_wallet,
    PaymentMethod.ONLINE: settle_online_reservation,
}


def settle(db: Session, order: Order) -> None:
    SETTLEMENT_HANDLERS[order.payment_method](db, order)


# --- Online payment, phase 1 ---

async def open_online_session(db: Session, order: Order, gateway) -> dict:
    try:
        session = await gateway.create_session(
            order.total, settings.CURRENCY,
            {"order_id": order.id, "order_number": order.order_number},
        )
    except httpx.TimeoutException:
        # Outcome unknown: keep the reservation, the reclaim sweep releases it if no payment arrives
        logger.warning("Payment gateway timed out opening session for order %s", order.id)
        raise GatewayTimeout(order_id=order.id, order_number=order.order_number)
    except httpx.HTTPError as e:
        logger.exception("Payment gateway rejected session for order %s: %s", order.id, e)
        rollback_pending_online_order(db, order.id, reason="Payment could not be started.")
        raise PaymentGatewayError(order_id=order.id)

    order.gateway_order_id = session.session_id
    db.commit()
    db.refresh(order)
    return {
        "session_id": session.session_id,
        "client_token": session.client_token,
        "amount": session.amount,
        "currency": session.currency,
        "key_id": getattr(gateway, "key_id", None),
    }


# --- Online payment, phase 2 ---

def get_order(db: Session, order_id: int, user_id: Optional[int] = None) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    order = query.first()
    if not order:
        raise OrderNotFound(order_id=order_id)
    return order


def rollback_pending_online_order(db: Session, order_id: int, *, reason: str) -> Optional[Order]:
    """Cancel an unpaid online order and release its stock and coupon slot.

    The status guard makes this safe to race with confirmation, webhooks and
    the reclaim sweep: only the caller that flips PENDING to CANCELLED
    releases anything. Returns None when the order was no longer pending.
    """
    try:
        updated = db.query(Order).filter(
            Order.id == order_id,
            Order.payment_method == PaymentMethod.ONLINE,
            Order.status == OrderStatus.PENDING,
            Order.payment_status == PaymentStatus.PENDING,
        ).update({
            Order.status: OrderStatus.CANCELLED,
            Order.payment_status: PaymentStatus.FAILED,
            Order.cancelled_at: utcnow(),
        }, synchronize_session=False)
        if not updated:
            db.rollback()
            return None

        order = db.query(Order).filter(Order.id == order_id).populate_existing().first()
        for item in order.items:
            catalog.restore_stock(db, item.product_id, item.qty)
        coupons.release(db, order.id)
        cart_store.restore_lines(db, order.user_id, order.items)
        order.add_timeline(OrderStatus.CANCELLED, "Order Cancelled", reason)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to roll back pending online order %s", order_id)
        raise

    db.refresh(order)
    logger.info("Pending online order %s rolled back: %s", order_id, reason)
    return order


def mark_paid(db: Session, order_id: int, gateway_payment_id: Optional[str],
              notifier: Optional[notifications.NotificationSink] = None) -> Order:
    updated = db.query(Order).filter(
        Order.id == order_id,
        Order.status == OrderStatus.PENDING,
        Order.payment_status == PaymentStatus.PENDING,
    ).update({
        Order.status: OrderStatus.CONFIRMED,
        Order.payment_status: PaymentStatus.PAID,
        Order.confirmed_at: utcnow(),
        Order.gateway_payment_id: gateway_payment_id,
    }, synchronize_session=False)

    order = db.query(Order).filter(Order.id == order_id).populate_existing().first()
    if updated:
        order.add_timeline(OrderStatus.CONFIRMED, "Payment Successful", "Payment successful. Order confirmed.")
        db.commit()
        db.refresh(order)
        notifications.emit_safely(notifier, order.user_id, notifications.PAYMENT_CONFIRMED,
                                  {"order_id": order.id, "order_number": order.order_number})
        return order

    db.rollback()
    if order.payment_status == PaymentStatus.PAID:
        return order

    if order.status == OrderStatus.CANCELLED:
        _refund_late_capture(db, order, gateway_payment_id, notifier)
        raise InvalidOrderState(
            "Order was cancelled before the payment completed, the amount was credited to your wallet",
            order_id=order.id, status=order.status.value, refunded=True,
        )
    raise InvalidOrderState(order_id=order.id, status=order.status.value)


def _refund_late_capture(db: Session, order: Order, gateway_payment_id: Optional[str],
                         notifier: Optional[notifications.NotificationSink]) -> None:
    # Money arrived after the reservation was released; return it as store credit once
    updated = db.query(Order).filter(
        Order.id == order.id,
        Order.status == OrderStatus.CANCELLED,
        Order.payment_status.in_([PaymentStatus.PENDING, PaymentStatus.FAILED]),
    ).update({
        Order.payment_status: PaymentStatus.REFUNDED,
        Order.gateway_payment_id: gateway_payment_id,
    }, synchronize_session=False)
    if not updated:
        db.rollback()
        return
    wallet.credit(db, order.user_id, order.total, reference_id=order.id,
                  description=f"Refund for cancelled order #{order.order_number}")
    order.add_timeline(OrderStatus.CANCELLED, "Refund Issued",
                       "Payment received after cancellation was credited to your wallet.")
    db.commit()
    logger.warning("Late payment %s for cancelled order %s refunded to wallet", gateway_payment_id, order.id)
    notifications.emit_safely(notifier, order.user_id, notifications.REFUND_ISSUED,
                              {"order_id": order.id, "order_number": order.order_number, "amount": order.total})


def record_failed_attempt(db: Session, order_id: int, *, reason: str,
                          notifier: Optional[notifications.NotificationSink] = None) -> Optional[Order]:
    """Note a failed gateway attempt on an unpaid order.

    The customer may retry on the same gateway order, so nothing is released
    here. Confirmation, cancellation or the reclaim sweep settle it later.
    Returns None when the order is no longer waiting for payment.
    """
    order = db.query(Order).filter(
        Order.id == order_id,
        Order.payment_method == PaymentMethod.ONLINE,
        Order.status == OrderStatus.PENDING,
        Order.payment_status == PaymentStatus.PENDING,
    ).first()
    if not order:
        return None

    order.add_timeline(OrderStatus.PENDING, "Payment Failed", reason)
    db.commit()
    db.refresh(order)
    logger.info("Payment attempt failed for order %s: %s", order.id, reason)
    notifications.emit_safely(notifier, order.user_id, notifications.PAYMENT_FAILED,
                              {"order_id": order.id, "order_number": order.order_number})
    return order


def record_gateway_refund(db: Session, order_id: int, amount: float,
                          notifier: Optional[notifications.NotificationSink] = None) -> Optional[Order]:
    """Mark a paid order as refunded at the gateway. Redeliveries change nothing."""
    updated = db.query(Order).filter(
        Order.id == order_id,
        Order.payment_status == PaymentStatus.PAID,
    ).update({Order.payment_status: PaymentStatus.REFUNDED}, synchronize_session=False)
    if not updated:
        db.rollback()
        return None

    order = db.query(Order).filter(Order.id == order_id).populate_existing().first()
    amount = round(amount, 2)
    order.add_timeline(order.status, "Refund Initiated", f"Refund of {amount} initiated")
    db.commit()
    db.refresh(order)
    logger.info("Gateway refund of %s recorded for order %s", amount, order.id)
    notifications.emit_safely(notifier, order.user_id, notifications.REFUND_INITIATED,
                              {"order_id": order.id, "order_number": order.order_number, "amount": amount})
    return order


def confirm_online_payment(db: Session, order_id: int, payload: dict, gateway, *,
                           user_id: Optional[int] = None,
                           notifier: Optional[notifications.NotificationSink] = None) -> Order:
    order = get_order(db, order_id, user_id)
    if order.payment_method != PaymentMethod.ONLINE:
        raise InvalidOrderState("Order is not an online payment order", order_id=order.id)
    if order.payment_status == PaymentStatus.PAID:
        return order

    verified = (
        order.gateway_order_id is not None
        and payload.get("gateway_order_id") == order.gateway_order_id
        and gateway.verify(order.gateway_order_id, payload.get("signature"), payload)
    )
    if not verified:
        logger.warning("Payment signature verification failed for order %s", order.id)
        rolled_back = rollback_pending_online_order(db, order.id, reason="Payment verification failed.")
        if rolled_back:
            notifications.emit_safely(notifier, order.user_id, notifications.PAYMENT_FAILED,
                                      {"order_id": order.id, "order_number": order.order_number})
        raise PaymentVerificationFailed(order_id=order.id)

    return mark_paid(db, order.id, payload.get("gateway_payment_id"), notifier)


def cancel_pending_online_order(db: Session, order_id: int, *, user_id: Optional[int] = None,
                                reason: str = "Order cancelled - Payment not completed.",
                                notifier: Optional[notifications.NotificationSink] = None) -> Order:
    order = get_order(db, order_id, user_id)
    if order.payment_method != PaymentMethod.ONLINE or order.payment_status != PaymentStatus.PENDING:
        raise InvalidOrderState("Only unpaid online orders can be cancelled this way",
                                order_id=order.id, status=order.status.value)

    rolled_back = rollback_pending_online_order(db, order.id, reason=reason)
    if not rolled_back:
        db.refresh(order)
        raise InvalidOrderState(order_id=order.id, status=order.status.value)

    notifications.emit_safely(notifier, rolled_back.user_id, notifications.ORDER_CANCELLED,
                              {"order_id": rolled_back.id, "order_number": rolled_back.order_number})
    return rolled_back
