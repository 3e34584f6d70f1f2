import asyncio
from datetime import timedelta

import httpx
import pytest

from models.coupon import Coupon, CouponRedemption
from models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from models.wallet import Wallet
from services import cart_store, catalog, checkout, notifications, payments, reclaim
from services.errors import (
    GatewayTimeout, InvalidOrderState, OrderNotFound, PaymentGatewayError, PaymentVerificationFailed,
)
from utils.clock import utcnow


@pytest.fixture
def pending_order(db, store, fill_cart, gateway):
    """An online order for 600 less SAVE20, waiting for payment."""
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))
    placed = asyncio.run(checkout.place_order(
        db, store.customer_id, store.home_id, PaymentMethod.ONLINE, coupon_code="SAVE20", gateway=gateway,
    ))
    return placed


def _confirmation(gateway, order_id, db, payment_id="pay_001"):
    session_id = db.get(Order, order_id).gateway_order_id
    return {
        "gateway_order_id": session_id,
        "gateway_payment_id": payment_id,
        "signature": gateway.sign(session_id, payment_id),
    }


def test_phase_one_reserves_and_opens_a_session(db, store, pending_order, gateway):
    assert (pending_order.status, pending_order.payment_status) == ("PENDING", "PENDING")
    assert pending_order.total == 500.0
    session = pending_order.payment_session
    assert session["session_id"] == "order_test1"
    assert session["amount"] == 50000
    assert session["currency"] == "INR"
    assert session["key_id"] == "rzp_test_key"

    order = db.get(Order, pending_order.order_id)
    assert order.gateway_order_id == "order_test1"
    assert catalog.current_stock(db, store.rice_id) == 3
    assert db.get(Coupon, store.save20_id).used_count == 1
    assert cart_store.get_lines(db, store.customer_id) == []
    assert gateway.sessions[0][1]["order_number"] == pending_order.order_number


def test_online_placement_asks_for_payment(db, store, fill_cart, gateway, sink):
    fill_cart(store.customer_id, (store.milk_id, 4))

    placed = asyncio.run(checkout.place_order(db, store.customer_id, store.home_id, PaymentMethod.ONLINE,
                                              gateway=gateway, notifier=sink))

    assert sink.types() == [notifications.AWAITING_PAYMENT]
    assert sink.events[0][2] == {"order_id": placed.order_id, "order_number": placed.order_number}


def test_verified_payment_confirms_the_order(db, store, pending_order, gateway, sink):
    payload = _confirmation(gateway, pending_order.order_id, db)

    order = payments.confirm_online_payment(db, pending_order.order_id, payload, gateway,
                                            user_id=store.customer_id, notifier=sink)

    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.PAID
    assert order.gateway_payment_id == "pay_001"
    assert order.confirmed_at is not None
    assert sink.types() == [notifications.PAYMENT_CONFIRMED]

    # A repeated confirmation is a no-op
    again = payments.confirm_online_payment(db, pending_order.order_id, payload, gateway,
                                            user_id=store.customer_id, notifier=sink)
    assert again.payment_status == PaymentStatus.PAID
    assert sink.types() == [notifications.PAYMENT_CONFIRMED]


def test_bad_signature_rolls_the_order_back(db, store, pending_order, gateway, sink):
    payload = _confirmation(gateway, pending_order.order_id, db)
    payload["signature"] = "forged"

    with pytest.raises(PaymentVerificationFailed) as exc:
        payments.confirm_online_payment(db, pending_order.order_id, payload, gateway,
                                        user_id=store.customer_id, notifier=sink)

    assert exc.value.details == {"order_id": pending_order.order_id}
    db.expire_all()
    order = db.get(Order, pending_order.order_id)
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.FAILED
    assert catalog.current_stock(db, store.milk_id) == 10
    assert catalog.current_stock(db, store.rice_id) == 5
    assert db.get(Coupon, store.save20_id).used_count == 0
    assert db.query(CouponRedemption).count() == 0
    assert len(cart_store.get_lines(db, store.customer_id)) == 2
    assert sink.types() == [notifications.PAYMENT_FAILED]


def test_mismatched_gateway_order_id_is_rejected(db, store, pending_order, gateway):
    payload = _confirmation(gateway, pending_order.order_id, db)
    payload["gateway_order_id"] = "order_someone_else"

    with pytest.raises(PaymentVerificationFailed):
        payments.confirm_online_payment(db, pending_order.order_id, payload, gateway, user_id=store.customer_id)


def test_user_cancellation_releases_everything(db, store, pending_order, sink):
    order = payments.cancel_pending_online_order(db, pending_order.order_id,
                                                 user_id=store.customer_id, notifier=sink)

    assert order.status == OrderStatus.CANCELLED
    assert order.timeline[-1].status == "CANCELLED"
    assert catalog.current_stock(db, store.rice_id) == 5
    db.expire_all()
    assert db.get(Coupon, store.save20_id).used_count == 0
    assert sink.types() == [notifications.ORDER_CANCELLED]

    with pytest.raises(InvalidOrderState):
        payments.cancel_pending_online_order(db, pending_order.order_id, user_id=store.customer_id)
    # Stock is released only once
    assert catalog.current_stock(db, store.rice_id) == 5


def test_cancellation_by_another_user_is_not_found(db, store, pending_order):
    with pytest.raises(OrderNotFound):
        payments.cancel_pending_online_order(db, pending_order.order_id, user_id=store.other_id)


def test_gateway_timeout_leaves_order_for_the_sweep(db, store, fill_cart, gateway, sink):
    fill_cart(store.customer_id, (store.milk_id, 4))
    gateway.error = httpx.ReadTimeout("gateway too slow")

    with pytest.raises(GatewayTimeout) as exc:
        asyncio.run(checkout.place_order(db, store.customer_id, store.home_id, PaymentMethod.ONLINE,
                                         gateway=gateway))

    order_id = exc.value.details["order_id"]
    order = db.get(Order, order_id)
    assert order.status == OrderStatus.PENDING
    assert catalog.current_stock(db, store.milk_id) == 6

    # Still inside the payment window
    assert reclaim.reclaim_abandoned_online_orders(db, notifier=sink) == []

    later = utcnow() + timedelta(minutes=16)
    assert reclaim.reclaim_abandoned_online_orders(db, now=later, notifier=sink) == [order_id]
    db.expire_all()
    assert db.get(Order, order_id).status == OrderStatus.CANCELLED
    assert catalog.current_stock(db, store.milk_id) == 10
    assert sink.types() == [notifications.ORDER_CANCELLED]

    # A second sweep finds nothing
    assert reclaim.reclaim_abandoned_online_orders(db, now=later) == []


def test_gateway_rejection_rolls_back_immediately(db, store, fill_cart, gateway):
    fill_cart(store.customer_id, (store.milk_id, 4))
    gateway.error = httpx.ConnectError("connection refused")

    with pytest.raises(PaymentGatewayError):
        asyncio.run(checkout.place_order(db, store.customer_id, store.home_id, PaymentMethod.ONLINE,
                                         gateway=gateway))

    db.expire_all()
    order = db.query(Order).one()
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.FAILED
    assert catalog.current_stock(db, store.milk_id) == 10


def test_sweep_ignores_settled_orders(db, store, pending_order, gateway):
    payments.confirm_online_payment(db, pending_order.order_id, _confirmation(gateway, pending_order.order_id, db),
                                    gateway, user_id=store.customer_id)

    later = utcnow() + timedelta(hours=1)
    assert reclaim.reclaim_abandoned_online_orders(db, now=later) == []
    assert db.get(Order, pending_order.order_id).payment_status == PaymentStatus.PAID


def test_capture_after_cancellation_is_refunded_to_wallet(db, store, pending_order, sink):
    payments.cancel_pending_online_order(db, pending_order.order_id, user_id=store.customer_id)

    with pytest.raises(InvalidOrderState) as exc:
        payments.mark_paid(db, pending_order.order_id, "pay_late", notifier=sink)

    assert exc.value.details["refunded"] is True
    db.expire_all()
    order = db.get(Order, pending_order.order_id)
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.REFUNDED
    assert db.query(Wallet).filter(Wallet.user_id == store.customer_id).one().balance == 500.0
    assert notifications.REFUND_ISSUED in sink.types()

    # The same capture delivered again does not refund twice
    with pytest.raises(InvalidOrderState):
        payments.mark_paid(db, pending_order.order_id, "pay_late", notifier=sink)
    db.expire_all()
    assert db.query(Wallet).filter(Wallet.user_id == store.customer_id).one().balance == 500.0
