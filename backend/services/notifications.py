# backend/services/notifications.py
"""Best-effort customer notifications for order state changes.

Nothing here may fail a checkout: every emit goes through ``emit_safely``,
which logs and swallows sink errors after the order is already committed.
"""
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from database import SessionLocal
from models.notification import Notification

logger = logging.getLogger(__name__)

ORDER_PLACED = "ORDER_PLACED"
PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
PAYMENT_FAILED = "PAYMENT_FAILED"
ORDER_CANCELLED = "ORDER_CANCELLED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
REFUND_ISSUED = "REFUND_ISSUED"
REFUND_INITIATED = "REFUND_INITIATED"
AWAITING_PAYMENT = "AWAITING_PAYMENT"

_TEMPLATES = {
    ORDER_PLACED: ("Order Placed Successfully",
                   "Your order #{order_number} has been placed and will be delivered soon."),
    PAYMENT_CONFIRMED: ("Payment Successful",
                        "Payment for order #{order_number} has been confirmed."),
    PAYMENT_FAILED: ("Payment Failed",
                     "Payment for order #{order_number} failed. Please try again."),
    ORDER_CANCELLED: ("Order Cancelled",
                      "Your order #{order_number} has been cancelled."),
    ORDER_STATUS_CHANGED: ("Order Update",
                           "Your order #{order_number} is now {status}."),
    REFUND_ISSUED: ("Refund Issued",
                    "{amount} for order #{order_number} has been credited to your wallet."),
    REFUND_INITIATED: ("Refund Initiated",
                       "Refund of {amount} for order #{order_number} has been initiated."),
    AWAITING_PAYMENT: ("Complete Your Payment",
                       "Your order #{order_number} is reserved. Complete the payment to confirm it."),
}


def render(type_: str, payload: Dict[str, Any]):
    title, message = _TEMPLATES.get(type_, ("Notification", "{order_number}"))
    try:
        return title, message.format(**payload)
    except KeyError:
        return title, message


class NotificationSink:
    def emit(self, user_id: int, type_: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Writes notifications to the in-app feed using its own session."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def emit(self, user_id: int, type_: str, payload: Dict[str, Any]) -> None:
        title, message = render(type_, payload)
        db = self.session_factory()
        try:
            db.add(Notification(user_id=user_id, type=type_, title=title, message=message, data=payload))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class BackgroundNotifier(NotificationSink):
    """Defers emits until after the HTTP response has been sent."""

    def __init__(self, tasks: BackgroundTasks, sink: NotificationSink):
        self.tasks = tasks
        self.sink = sink

    def emit(self, user_id: int, type_: str, payload: Dict[str, Any]) -> None:
        self.tasks.add_task(emit_safely, self.sink, user_id, type_, payload)


def emit_safely(sink: Optional[NotificationSink], user_id: int, type_: str, payload: Dict[str, Any]) -> None:
    if sink is None:
        return
    try:
        sink.emit(user_id, type_, payload)
    except Exception as e:
        logger.exception("Failed to emit %s notification for user %s: %s", type_, user_id, e)


def get_notification_sink() -> NotificationSink:
    return DatabaseNotificationSink()
