# backend/routes/service_areas.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from schemas.service_area import ServiceabilityResponse, DeliveryTermsOut
from services import service_areas

router = APIRouter(prefix="/service-areas", tags=["Service Areas"])

# Public pincode check used by the location picker
@router.get("/check", response_model=ServiceabilityResponse)
def check_postal_code(
    postal_code: str = Query(..., min_length=1, max_length=10),
    db: Session = Depends(get_db),
):
    resolution = service_areas.resolve(db, postal_code)
    terms = None
    if resolution.terms:
        terms = DeliveryTermsOut(
            delivery_fee=resolution.terms.delivery_fee,
            min_order_value=resolution.terms.min_order_value,
            eta_label=resolution.terms.eta_label,
        )
    return ServiceabilityResponse(
        postal_code=resolution.postal_code,
        is_serviceable=resolution.is_serviceable,
        terms=terms,
    )
