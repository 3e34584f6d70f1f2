import asyncio

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models.address import Address
from models.coupon import Coupon
from models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from models.product import Product
from models.wallet import Wallet, WalletTransaction, WalletTransactionType
from services import cart_store, catalog, checkout, notifications, payments
from services import wallet as wallet_service
from services.errors import (
    AddressNotFound, AddressNotServiceable, BelowMinimumOrderValue, CartChanged, CheckoutError, CouponNotFound,
    InsufficientStock, InsufficientWalletBalance, OrderCommitFailed,
)


def place(db, user_id, address_id, method, coupon_code=None, gateway=None, sink=None):
    return asyncio.run(checkout.place_order(
        db, user_id, address_id, method, coupon_code=coupon_code, gateway=gateway, notifier=sink,
    ))


def test_delivery_fee_rules():
    assert checkout.compute_delivery_fee(600.0, 30.0, threshold=499.0) == 0.0
    assert checkout.compute_delivery_fee(499.0, 30.0, threshold=499.0) == 0.0
    assert checkout.compute_delivery_fee(498.99, 30.0, threshold=499.0) == 30.0


def test_total_never_goes_negative():
    assert checkout.compute_total(100.0, 150.0, 30.0) == (130.0, 0.0)
    assert checkout.compute_total(600.0, 100.0, 0.0) == (100.0, 500.0)


def test_cod_order(db, store, fill_cart, sink):
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))

    placed = place(db, store.customer_id, store.home_id, PaymentMethod.COD, sink=sink)

    assert placed.status == "CONFIRMED"
    assert placed.payment_status == "PENDING"
    assert placed.payment_session is None
    assert placed.order_number.startswith("KT")

    order = db.get(Order, placed.order_id)
    assert (order.subtotal, order.delivery_fee, order.discount, order.total) == (600.0, 0.0, 0.0, 600.0)
    assert [t.status for t in order.timeline] == ["CONFIRMED"]
    assert catalog.current_stock(db, store.milk_id) == 6
    assert catalog.current_stock(db, store.rice_id) == 3
    assert cart_store.get_lines(db, store.customer_id) == []
    assert sink.types() == [notifications.ORDER_PLACED]


def test_delivery_fee_below_threshold(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 2))

    placed = place(db, store.customer_id, store.home_id, PaymentMethod.COD)

    order = db.get(Order, placed.order_id)
    assert order.delivery_fee == 30.0
    assert order.total == 130.0


def test_free_delivery_coupon(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 2))

    placed = place(db, store.customer_id, store.home_id, PaymentMethod.COD, coupon_code="freeship")

    order = db.get(Order, placed.order_id)
    assert order.delivery_fee == 0.0
    assert order.total == 100.0
    assert order.coupon_code == "FREESHIP"
    assert db.get(Coupon, store.freeship_id).used_count == 1


def test_percentage_coupon_is_applied(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))

    placed = place(db, store.customer_id, store.home_id, PaymentMethod.COD, coupon_code="SAVE20")

    assert placed.total == 500.0
    assert db.get(Order, placed.order_id).discount == 100.0


def test_unserviceable_address_has_no_side_effects(db, store, fill_cart, sink):
    fill_cart(store.customer_id, (store.milk_id, 4))

    with pytest.raises(AddressNotServiceable) as exc:
        place(db, store.customer_id, store.far_id, PaymentMethod.COD, coupon_code="FREESHIP", sink=sink)

    assert exc.value.details["postal_code"] == "110001"
    assert db.query(Order).count() == 0
    assert catalog.current_stock(db, store.milk_id) == 10
    assert db.get(Coupon, store.freeship_id).used_count == 0
    assert len(cart_store.get_lines(db, store.customer_id)) == 1
    assert sink.events == []


def test_address_of_another_user(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 4))

    with pytest.raises(AddressNotFound):
        place(db, store.customer_id, store.other_home_id, PaymentMethod.COD)


def test_below_area_minimum(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 1))

    with pytest.raises(BelowMinimumOrderValue) as exc:
        place(db, store.customer_id, store.home_id, PaymentMethod.COD)

    assert exc.value.details == {"min_order_value": 100.0, "shortfall": 50.0}


def test_invalid_coupon_is_never_dropped(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 4))

    with pytest.raises(CouponNotFound):
        place(db, store.customer_id, store.home_id, PaymentMethod.COD, coupon_code="NOPE")

    assert db.query(Order).count() == 0


def test_wallet_order(db, store, fill_cart, fund_wallet):
    fund_wallet(store.customer_id, 1000.0)
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))

    placed = place(db, store.customer_id, store.home_id, PaymentMethod.WALLET)

    assert (placed.status, placed.payment_status) == ("CONFIRMED", "PAID")
    db.expire_all()
    wallet = db.query(Wallet).filter(Wallet.user_id == store.customer_id).one()
    assert wallet.balance == 400.0
    debit = db.query(WalletTransaction).filter(WalletTransaction.type == WalletTransactionType.DEBIT).one()
    assert debit.amount == 600.0
    assert debit.reference_id == str(placed.order_id)


def test_wallet_shortfall_rolls_everything_back(db, store, fill_cart, fund_wallet):
    fund_wallet(store.customer_id, 100.0)
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))

    with pytest.raises(InsufficientWalletBalance) as exc:
        place(db, store.customer_id, store.home_id, PaymentMethod.WALLET, coupon_code="SAVE20")

    assert exc.value.details == {"balance": 100.0, "required": 500.0}
    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.query(Wallet).filter(Wallet.user_id == store.customer_id).one().balance == 100.0
    assert db.get(Coupon, store.save20_id).used_count == 0
    assert catalog.current_stock(db, store.rice_id) == 5
    assert len(cart_store.get_lines(db, store.customer_id)) == 2


def test_concurrent_checkouts_never_oversell(db, store, fill_cart):
    fill_cart(store.customer_id, (store.rice_id, 3))
    fill_cart(store.other_id, (store.rice_id, 3))

    # Both carts pass the read-only checks before either commits
    first = checkout.prepare_order(db, store.customer_id, store.home_id)
    second = checkout.prepare_order(db, store.other_id, store.other_home_id)

    checkout.commit_order(db, store.customer_id, first, PaymentMethod.COD)
    with pytest.raises(InsufficientStock) as exc:
        checkout.commit_order(db, store.other_id, second, PaymentMethod.COD)

    assert exc.value.details["available"] == 2
    assert catalog.current_stock(db, store.rice_id) == 2
    assert db.query(Order).count() == 1
    # The losing cart is untouched
    assert len(cart_store.get_lines(db, store.other_id)) == 1


def test_double_submit_places_one_order(db, store, fill_cart):
    fill_cart(store.customer_id, (store.rice_id, 2))

    # Same cart submitted twice, both requests priced before either commits
    first = checkout.prepare_order(db, store.customer_id, store.home_id)
    second = checkout.prepare_order(db, store.customer_id, store.home_id)

    checkout.commit_order(db, store.customer_id, first, PaymentMethod.COD)
    with pytest.raises(CartChanged):
        checkout.commit_order(db, store.customer_id, second, PaymentMethod.COD)

    db.expire_all()
    assert db.query(Order).count() == 1
    assert catalog.current_stock(db, store.rice_id) == 3


def test_cart_edited_between_pricing_and_commit(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 4))
    quote = checkout.prepare_order(db, store.customer_id, store.home_id)

    line = cart_store.get_lines(db, store.customer_id)[0]
    line.qty = 6
    db.commit()

    with pytest.raises(CartChanged):
        checkout.commit_order(db, store.customer_id, quote, PaymentMethod.COD)

    db.expire_all()
    assert db.query(Order).count() == 0
    assert catalog.current_stock(db, store.milk_id) == 10
    assert [item.qty for item in cart_store.get_lines(db, store.customer_id)] == [6]


def test_concurrent_wallet_checkouts_never_overdraw(db, store, fill_cart, fund_wallet):
    fund_wallet(store.customer_id, 300.0)
    fill_cart(store.customer_id, (store.milk_id, 4))

    # Both requests see a balance of 300 against a total of 230
    first = checkout.prepare_order(db, store.customer_id, store.home_id)
    second = checkout.prepare_order(db, store.customer_id, store.home_id)

    checkout.commit_order(db, store.customer_id, first, PaymentMethod.WALLET)
    with pytest.raises(CheckoutError):
        checkout.commit_order(db, store.customer_id, second, PaymentMethod.WALLET)

    db.expire_all()
    assert db.query(Wallet).filter(Wallet.user_id == store.customer_id).one().balance == 70.0
    assert db.query(WalletTransaction).filter(WalletTransaction.type == WalletTransactionType.DEBIT).count() == 1
    assert db.query(Order).count() == 1


def test_wallet_debit_is_conditional_on_the_balance(db, store, fund_wallet):
    fund_wallet(store.customer_id, 300.0)

    wallet_service.debit(db, store.customer_id, 230.0, reference_id=1)
    db.commit()
    with pytest.raises(InsufficientWalletBalance) as exc:
        wallet_service.debit(db, store.customer_id, 230.0, reference_id=2)
    db.rollback()

    assert exc.value.details == {"balance": 70.0, "required": 230.0}
    db.expire_all()
    assert db.query(Wallet).filter(Wallet.user_id == store.customer_id).one().balance == 70.0


def test_placed_order_keeps_its_snapshot(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))
    placed = place(db, store.customer_id, store.home_id, PaymentMethod.COD)

    db.get(Product, store.milk_id).price = 75.0
    address = db.get(Address, store.home_id)
    address.line1 = "99 New Street"
    db.commit()
    db.delete(db.get(Address, store.home_id))
    db.commit()
    db.expire_all()

    order = db.get(Order, placed.order_id)
    assert order.shipping_line1 == "12, 4th Cross"
    assert order.shipping_postal_code == "560034"
    milk_line = next(item for item in order.items if item.product_id == store.milk_id)
    assert (milk_line.unit_price, milk_line.line_total) == (50.0, 200.0)
    assert order.total == 600.0


def test_persistence_failure_is_reported_and_rolled_back(db, store, fill_cart, monkeypatch):
    fill_cart(store.customer_id, (store.milk_id, 4))

    def broken_settle(db, order):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(payments, "settle", broken_settle)

    with pytest.raises(OrderCommitFailed):
        place(db, store.customer_id, store.home_id, PaymentMethod.COD)

    assert db.query(Order).count() == 0
    assert catalog.current_stock(db, store.milk_id) == 10


def test_order_status_enum_values(db, store, fill_cart):
    fill_cart(store.customer_id, (store.milk_id, 4))

    placed = place(db, store.customer_id, store.home_id, PaymentMethod.COD)

    order = db.get(Order, placed.order_id)
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.PENDING
    assert order.items[0].product_name == "Toned Milk"
