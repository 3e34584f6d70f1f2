# backend/services/checkout.py
"""Order assembly: validate, price, commit and settle a checkout.

``place_order`` runs the whole pipeline for one request. Validation steps
only read; every write (order row, stock, coupon, wallet, cart) happens in
``commit_order`` under a single transaction so a rejection at any point
leaves no partial state.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.address import Address
from models.delivery_slot import DeliverySlot
from models.order import Order, OrderItem, PaymentMethod
from services import cart_store, catalog, coupons, delivery_slots, payments, service_areas
from services import notifications
from services.cart_snapshot import LineItem, build_snapshot, subtotal_of
from services.coupons import DiscountResult
from services.errors import (
    AddressNotFound, AddressNotServiceable, BelowMinimumOrderValue, CartChanged,
    CheckoutError, InsufficientStock, OrderCommitFailed,
)
from services.service_areas import ServiceAreaResolution
from utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Quote:
    address: Address
    service_area: ServiceAreaResolution
    lines: List[LineItem]
    subtotal: float
    delivery_fee: float
    discount: float
    total: float
    coupon: Optional[DiscountResult] = None
    delivery_slot: Optional[DeliverySlot] = None


@dataclass
class PlacedOrder:
    order_id: int
    order_number: str
    total: float
    status: str
    payment_status: str
    payment_session: Optional[dict] = field(default=None)


def generate_order_number() -> str:
    return f"KT{utcnow():%y%m%d}{uuid.uuid4().hex[:6].upper()}"


def get_address(db: Session, address_id: int, user_id: int) -> Address:
    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user_id).first()
    if not address:
        raise AddressNotFound(address_id=address_id)
    return address


def compute_delivery_fee(subtotal: float, area_fee: float, coupon: Optional[DiscountResult] = None,
                         threshold: Optional[float] = None) -> float:
    if threshold is None:
        threshold = settings.FREE_DELIVERY_THRESHOLD
    if subtotal >= threshold:
        return 0.0
    if coupon is not None and coupon.free_delivery:
        return 0.0
    return round(area_fee, 2)


def compute_total(subtotal: float, discount: float, delivery_fee: float):
    # Never let a discount push the total below zero
    discount = min(round(discount, 2), round(subtotal + delivery_fee, 2))
    return discount, round(subtotal - discount + delivery_fee, 2)


def prepare_order(db: Session, user_id: int, address_id: int,
                  coupon_code: Optional[str] = None, delivery_slot_id: Optional[int] = None) -> Quote:
    """Read-only part of checkout: everything that can reject before writing."""
    address = get_address(db, address_id, user_id)

    resolution = service_areas.resolve(db, address.postal_code)
    if not resolution.is_serviceable:
        raise AddressNotServiceable(postal_code=address.postal_code)
    terms = resolution.terms

    slot = delivery_slots.get_active(db, delivery_slot_id)

    lines = build_snapshot(db, user_id)
    subtotal = subtotal_of(lines)

    if subtotal < terms.min_order_value:
        raise BelowMinimumOrderValue(
            f"Minimum order for this area is {terms.min_order_value}",
            min_order_value=terms.min_order_value,
            shortfall=round(terms.min_order_value - subtotal, 2),
        )

    coupon = None
    if coupon_code:
        coupon = coupons.validate(db, coupon_code, subtotal, user_id)

    delivery_fee = compute_delivery_fee(subtotal, terms.delivery_fee, coupon)
    discount, total = compute_total(subtotal, coupon.discount if coupon else 0.0, delivery_fee)

    return Quote(
        address=address,
        service_area=resolution,
        lines=lines,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        discount=discount,
        total=total,
        coupon=coupon,
        delivery_slot=slot,
    )


def commit_order(db: Session, user_id: int, quote: Quote, payment_method: PaymentMethod,
                 notes: Optional[str] = None) -> Order:
    """Apply every checkout side effect as one transaction, or none of them."""
    address = quote.address
    try:
        order = Order(
            order_number=generate_order_number(),
            user_id=user_id,
            payment_method=payment_method,
            subtotal=quote.subtotal,
            discount=quote.discount,
            delivery_fee=quote.delivery_fee,
            total=quote.total,
            coupon_code=quote.coupon.code if quote.coupon else None,
            notes=notes,
            delivery_slot_id=quote.delivery_slot.id if quote.delivery_slot else None,
            delivery_slot_label=quote.delivery_slot.label if quote.delivery_slot else None,
            shipping_recipient_name=address.recipient_name,
            shipping_phone=address.phone,
            shipping_line1=address.line1,
            shipping_line2=address.line2,
            shipping_landmark=address.landmark,
            shipping_city=address.city,
            shipping_state=address.state,
            shipping_postal_code=address.postal_code,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    product_name=line.product_name,
                    unit=line.unit,
                    qty=line.qty,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in quote.lines
            ],
        )
        db.add(order)
        db.flush()

        # 1. Claim the priced cart lines; a second submit of the same cart finds them gone
        if cart_store.consume_lines(db, user_id, quote.lines) != len(quote.lines):
            raise CartChanged()

        # 2. Stock, conditional per line
        for line in quote.lines:
            if not catalog.decrement_stock(db, line.product_id, line.qty):
                available = catalog.current_stock(db, line.product_id)
                raise InsufficientStock(
                    f"Only {available} units of {line.product_name} available",
                    product_id=line.product_id,
                    available=available,
                )

        # 3. Coupon slot
        if quote.coupon:
            coupons.redeem(db, quote.coupon.coupon_id, user_id, order.id)

        # 4. Payment method specific settlement (wallet debit happens here)
        payments.settle(db, order)

        db.commit()
    except CheckoutError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Order commit failed for user %s: %s", user_id, e)
        raise OrderCommitFailed()

    db.refresh(order)
    return order


async def place_order(db: Session, user_id: int, address_id: int, payment_method: PaymentMethod,
                      coupon_code: Optional[str] = None, notes: Optional[str] = None, *,
                      delivery_slot_id: Optional[int] = None,
                      gateway=None,
                      notifier: Optional[notifications.NotificationSink] = None) -> PlacedOrder:
    payment_method = PaymentMethod(payment_method)

    quote = prepare_order(db, user_id, address_id, coupon_code, delivery_slot_id)
    order = commit_order(db, user_id, quote, payment_method, notes)
    logger.info("Order %s committed for user %s (%s, total=%s)",
                order.order_number, user_id, payment_method.value, order.total)

    payment_session = None
    event = notifications.ORDER_PLACED
    if payment_method == PaymentMethod.ONLINE:
        payment_session = await payments.open_online_session(db, order, gateway)
        event = notifications.AWAITING_PAYMENT
    notifications.emit_safely(notifier, user_id, event,
                              {"order_id": order.id, "order_number": order.order_number})

    return PlacedOrder(
        order_id=order.id,
        order_number=order.order_number,
        total=order.total,
        status=order.status.value,
        payment_status=order.payment_status.value,
        payment_session=payment_session,
    )
