# backend/services/reclaim.py
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from config import settings
from models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from services import payments
from services import notifications
from utils.clock import utcnow

logger = logging.getLogger(__name__)


def find_abandoned_online_orders(db: Session, cutoff: datetime) -> List[Order]:
    return db.query(Order).filter(
        Order.payment_method == PaymentMethod.ONLINE,
        Order.status == OrderStatus.PENDING,
        Order.payment_status == PaymentStatus.PENDING,
        Order.created_at < cutoff,
    ).order_by(Order.id).all()


def reclaim_abandoned_online_orders(db: Session, now: Optional[datetime] = None,
                                    ttl_minutes: Optional[int] = None,
                                    notifier: Optional[notifications.NotificationSink] = None) -> List[int]:
    """Cancel online orders whose payment window has lapsed and release their stock.

    Returns the ids of the orders this run cancelled. Orders confirmed or
    cancelled concurrently are skipped by the rollback's status guard.
    """
    now = now or utcnow()
    if ttl_minutes is None:
        ttl_minutes = settings.PENDING_ONLINE_ORDER_TTL_MINUTES
    cutoff = now - timedelta(minutes=ttl_minutes)

    reclaimed = []
    for order in find_abandoned_online_orders(db, cutoff):
        rolled_back = payments.rollback_pending_online_order(
            db, order.id, reason="Payment not completed in time."
        )
        if not rolled_back:
            continue
        reclaimed.append(rolled_back.id)
        notifications.emit_safely(notifier, rolled_back.user_id, notifications.ORDER_CANCELLED,
                                  {"order_id": rolled_back.id, "order_number": rolled_back.order_number})

    if reclaimed:
        logger.info("Reclaimed %d abandoned online orders: %s", len(reclaimed), reclaimed)
    return reclaimed
