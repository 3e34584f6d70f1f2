# backend/services/coupons.py
"""Coupon eligibility and redemption.

``validate`` is the advisory check used by the coupon preview endpoint and at
order assembly. The binding check is ``redeem``, run inside the order commit
transaction as a single conditional UPDATE so two checkouts racing for the
last slot cannot both succeed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models.coupon import Coupon, CouponRedemption, DiscountType
from services.errors import (
    CouponNotFound, CouponInactive, CouponExpired, CouponBelowMinimum,
    CouponUsageLimitReached, CouponPerUserLimitReached,
)
from utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscountResult:
    coupon_id: int
    code: str
    discount_type: DiscountType
    discount: float

    @property
    def free_delivery(self) -> bool:
        return self.discount_type == DiscountType.FREE_DELIVERY


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def get_by_code(db: Session, code: str) -> Optional[Coupon]:
    return db.query(Coupon).filter(func.upper(Coupon.code) == normalize_code(code)).first()


def compute_discount(coupon: Coupon, subtotal: float) -> float:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * coupon.value / 100.0
        # A zero cap means "no cap"
        if coupon.max_discount_amount:
            discount = min(discount, coupon.max_discount_amount)
    elif coupon.discount_type == DiscountType.FIXED:
        discount = min(coupon.value, subtotal)
    else:
        # FREE_DELIVERY zeroes the delivery fee instead
        discount = 0.0
    return round(max(discount, 0.0), 2)


def user_redemption_count(db: Session, coupon_id: int, user_id: int) -> int:
    return db.query(func.count(CouponRedemption.id)).filter(
        CouponRedemption.coupon_id == coupon_id,
        CouponRedemption.user_id == user_id,
    ).scalar() or 0


def _check_window(coupon: Coupon, now: datetime):
    if now < coupon.valid_from:
        raise CouponExpired("This coupon is not valid yet", coupon_code=coupon.code,
                            valid_from=coupon.valid_from.isoformat())
    if now > coupon.valid_until:
        raise CouponExpired(coupon_code=coupon.code, valid_until=coupon.valid_until.isoformat())


def validate(db: Session, code: str, subtotal: float, user_id: int,
             now: Optional[datetime] = None) -> DiscountResult:
    now = now or utcnow()

    coupon = get_by_code(db, code)
    if not coupon:
        raise CouponNotFound(coupon_code=normalize_code(code))
    if not coupon.is_active:
        raise CouponInactive(coupon_code=coupon.code)
    _check_window(coupon, now)

    min_amount = coupon.min_order_amount or 0
    if subtotal < min_amount:
        raise CouponBelowMinimum(
            f"Add {round(min_amount - subtotal, 2)} more to use this coupon",
            coupon_code=coupon.code,
            min_order_amount=min_amount,
            shortfall=round(min_amount - subtotal, 2),
        )

    if coupon.total_usage_limit is not None and coupon.used_count >= coupon.total_usage_limit:
        raise CouponUsageLimitReached(coupon_code=coupon.code)

    if user_redemption_count(db, coupon.id, user_id) >= coupon.per_user_usage_limit:
        raise CouponPerUserLimitReached(coupon_code=coupon.code)

    return DiscountResult(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount=compute_discount(coupon, subtotal),
    )


def redeem(db: Session, coupon_id: int, user_id: int, order_id: int,
           now: Optional[datetime] = None) -> None:
    """Consume one coupon slot for an order. Must run inside the commit transaction."""
    now = now or utcnow()

    updated = db.query(Coupon).filter(
        Coupon.id == coupon_id,
        Coupon.is_active.is_(True),
        Coupon.valid_from <= now,
        Coupon.valid_until >= now,
        or_(Coupon.total_usage_limit.is_(None), Coupon.used_count < Coupon.total_usage_limit),
    ).update({Coupon.used_count: Coupon.used_count + 1}, synchronize_session=False)

    coupon = db.query(Coupon).filter(Coupon.id == coupon_id).populate_existing().first()
    if not updated:
        # Work out which rule the row failed so the customer gets the right reason
        if not coupon:
            raise CouponNotFound()
        if not coupon.is_active:
            raise CouponInactive(coupon_code=coupon.code)
        _check_window(coupon, now)
        raise CouponUsageLimitReached(coupon_code=coupon.code)

    # The coupon row is locked by the UPDATE above until commit, so concurrent
    # redemptions of this coupon see each other's rows here.
    if user_redemption_count(db, coupon_id, user_id) >= coupon.per_user_usage_limit:
        raise CouponPerUserLimitReached(coupon_code=coupon.code)

    db.add(CouponRedemption(coupon_id=coupon_id, user_id=user_id, order_id=order_id))
    logger.info("Coupon %s redeemed by user %s for order %s", coupon.code, user_id, order_id)


def release(db: Session, order_id: int) -> bool:
    """Give back the slot a pending order reserved. Returns False if it held none."""
    redemption = db.query(CouponRedemption).filter(CouponRedemption.order_id == order_id).first()
    if not redemption:
        return False
    db.query(Coupon).filter(
        Coupon.id == redemption.coupon_id,
        Coupon.used_count > 0,
    ).update({Coupon.used_count: Coupon.used_count - 1}, synchronize_session=False)
    db.delete(redemption)
    return True
