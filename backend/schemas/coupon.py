from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from models.coupon import DiscountType


# Request schema for previewing a coupon against a cart subtotal
class CouponValidatePayload(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    subtotal: float = Field(ge=0)


class CouponValidateResponse(BaseModel):
    valid: bool = True
    code: str
    discount_type: DiscountType
    discount: float
    free_delivery: bool


# Publicly listed coupon
class CouponOut(BaseModel):
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    value: float
    min_order_amount: float
    max_discount_amount: Optional[float] = None
    valid_until: datetime

    class Config:
        from_attributes = True
