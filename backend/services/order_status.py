# backend/services/order_status.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from services import catalog, payments, wallet
from services import notifications
from services.errors import InvalidStatusTransition, InvalidOrderState
from utils.clock import utcnow

logger = logging.getLogger(__name__)

# Fulfillment moves one step at a time
NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.PACKED,
    OrderStatus.PACKED: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
}

TERMINAL = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Customers may only cancel before the order is being worked on
CUSTOMER_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: ("Order Confirmed", "Your order has been confirmed."),
    OrderStatus.PROCESSING: ("Order Processing", "Your order is being prepared."),
    OrderStatus.PACKED: ("Order Packed", "Your order has been packed."),
    OrderStatus.SHIPPED: ("Order Shipped", "Your order is on its way."),
    OrderStatus.OUT_FOR_DELIVERY: ("Out for Delivery", "Your order is out for delivery."),
    OrderStatus.DELIVERED: ("Order Delivered", "Your order has been delivered."),
    OrderStatus.CANCELLED: ("Order Cancelled", "Your order has been cancelled."),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current in TERMINAL:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return NEXT_STATUS.get(current) == target


def _cancel_committed(db: Session, order: Order, allowed, reason: str) -> Order:
    """Cancel a settled order: restore stock and refund anything already paid.

    Coupon usage is not given back once an order has been committed.
    """
    previous = order.status
    updated = db.query(Order).filter(
        Order.id == order.id,
        Order.status.in_(list(allowed)),
    ).update({Order.status: OrderStatus.CANCELLED, Order.cancelled_at: utcnow()},
             synchronize_session=False)
    if not updated:
        db.rollback()
        db.refresh(order)
        raise InvalidOrderState("Order cannot be cancelled at this stage",
                                order_id=order.id, status=order.status.value)

    order = db.query(Order).filter(Order.id == order.id).populate_existing().first()
    for item in order.items:
        catalog.restore_stock(db, item.product_id, item.qty)

    if order.payment_status == PaymentStatus.PAID:
        wallet.credit(db, order.user_id, order.total, reference_id=order.id,
                      description=f"Refund for cancelled order #{order.order_number}")
        order.payment_status = PaymentStatus.REFUNDED

    title, _ = STATUS_MESSAGES[OrderStatus.CANCELLED]
    order.add_timeline(OrderStatus.CANCELLED, title, reason)
    db.commit()
    db.refresh(order)
    logger.info("Order %s cancelled from %s: %s", order.id, previous.value, reason)
    return order


def cancel_order(db: Session, order_id: int, user_id: int,
                 notifier: Optional[notifications.NotificationSink] = None) -> Order:
    """Customer-initiated cancellation."""
    order = payments.get_order(db, order_id, user_id)

    if order.payment_method == PaymentMethod.ONLINE and order.payment_status == PaymentStatus.PENDING:
        return payments.cancel_pending_online_order(db, order.id, user_id=user_id, notifier=notifier)

    if order.status not in CUSTOMER_CANCELLABLE:
        raise InvalidOrderState("Order cannot be cancelled at this stage",
                                order_id=order.id, status=order.status.value)

    refunded = order.payment_status == PaymentStatus.PAID
    order = _cancel_committed(db, order, CUSTOMER_CANCELLABLE, "Order was cancelled by customer")
    notifications.emit_safely(notifier, order.user_id, notifications.ORDER_CANCELLED,
                              {"order_id": order.id, "order_number": order.order_number})
    if refunded:
        notifications.emit_safely(notifier, order.user_id, notifications.REFUND_ISSUED,
                                  {"order_id": order.id, "order_number": order.order_number,
                                   "amount": order.total})
    return order


def update_status(db: Session, order_id: int, target: OrderStatus,
                  payment_status: Optional[PaymentStatus] = None,
                  notifier: Optional[notifications.NotificationSink] = None) -> Order:
    """Back-office status change, enforcing the fulfillment state machine."""
    order = payments.get_order(db, order_id)
    target = OrderStatus(target)
    current = order.status

    if target != current:
        if not can_transition(current, target):
            raise InvalidStatusTransition(current=current.value, target=target.value)

        # An online order only leaves PENDING through payment confirmation or cancellation
        if (order.payment_method == PaymentMethod.ONLINE
                and order.payment_status != PaymentStatus.PAID
                and target != OrderStatus.CANCELLED):
            raise InvalidStatusTransition("Online order has not been paid",
                                          current=current.value, target=target.value)

        if target == OrderStatus.CANCELLED:
            if order.payment_method == PaymentMethod.ONLINE and order.payment_status == PaymentStatus.PENDING:
                order = payments.cancel_pending_online_order(
                    db, order.id, reason="Order cancelled by store.", notifier=notifier)
            else:
                order = _cancel_committed(db, order, {current}, "Order cancelled by store.")
                notifications.emit_safely(notifier, order.user_id, notifications.ORDER_CANCELLED,
                                          {"order_id": order.id, "order_number": order.order_number})
        else:
            updated = db.query(Order).filter(Order.id == order.id, Order.status == current).update(
                {Order.status: target}, synchronize_session=False)
            if not updated:
                db.rollback()
                raise InvalidStatusTransition("Order was changed concurrently",
                                              current=current.value, target=target.value)
            order = db.query(Order).filter(Order.id == order.id).populate_existing().first()
            title, description = STATUS_MESSAGES[target]
            order.add_timeline(target, title, description)
            db.commit()
            db.refresh(order)
            notifications.emit_safely(notifier, order.user_id, notifications.ORDER_STATUS_CHANGED,
                                      {"order_id": order.id, "order_number": order.order_number,
                                       "status": target.value})

    # Cash collected at the door is recorded by the back office
    if payment_status is not None and payment_status != order.payment_status:
        if not (order.payment_method == PaymentMethod.COD
                and order.payment_status == PaymentStatus.PENDING
                and payment_status == PaymentStatus.PAID
                and order.status != OrderStatus.CANCELLED):
            raise InvalidOrderState("Only unpaid cash-on-delivery orders can be marked paid",
                                    order_id=order.id)
        order.payment_status = PaymentStatus.PAID
        order.add_timeline(order.status, "Payment Received", "Cash payment collected.")
        db.commit()
        db.refresh(order)

    return order
