# backend/routes/coupons.py
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models.coupon import Coupon
from models.users import User
from schemas.coupon import CouponValidatePayload, CouponValidateResponse, CouponOut
from services import coupons
from utils.clock import utcnow
from utils.tokenJWT import get_current_user

router = APIRouter(prefix="/coupons", tags=["Coupons"])

# Preview a coupon at checkout. The discount is re-checked when the order is placed.
@router.post("/validate", response_model=CouponValidateResponse)
def validate_coupon(
    payload: CouponValidatePayload,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = coupons.validate(db, payload.code, payload.subtotal, current_user.id)
    return CouponValidateResponse(
        code=result.code,
        discount_type=result.discount_type,
        discount=result.discount,
        free_delivery=result.free_delivery,
    )

# Coupons currently on offer
@router.get("", response_model=List[CouponOut])
def list_available_coupons(db: Session = Depends(get_db)):
    now = utcnow()
    return (
        db.query(Coupon)
        .filter(Coupon.is_active.is_(True), Coupon.valid_from <= now, Coupon.valid_until >= now)
        .order_by(Coupon.valid_until.asc())
        .all()
    )
