# backend/models/coupon.py
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from database import Base
import enum

class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    FREE_DELIVERY = "FREE_DELIVERY"

# Discount code. Codes are stored upper-case and matched case-insensitively.
# used_count grows by one per committed order that redeemed the coupon.
class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    description = Column(String, nullable=True)

    discount_type = Column(Enum(DiscountType), nullable=False)
    value = Column(Float, CheckConstraint("value >= 0"), nullable=False, default=0)
    min_order_amount = Column(Float, nullable=False, default=0)
    max_discount_amount = Column(Float, nullable=True)

    total_usage_limit = Column(Integer, nullable=True)
    per_user_usage_limit = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, CheckConstraint("used_count >= 0"), nullable=False, default=0)

    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    redemptions = relationship("CouponRedemption", back_populates="coupon", cascade="all, delete-orphan")

# One row per order that consumed a coupon, used for per-user limits
class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    coupon = relationship("Coupon", back_populates="redemptions")

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_coupon_redemption_order"),
    )
