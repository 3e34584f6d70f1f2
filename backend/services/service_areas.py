# backend/services/service_areas.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from models.service_area import ServiceArea


@dataclass(frozen=True)
class DeliveryTerms:
    delivery_fee: float
    min_order_value: float
    eta_label: Optional[str]


@dataclass(frozen=True)
class ServiceAreaResolution:
    postal_code: str
    is_serviceable: bool
    terms: Optional[DeliveryTerms] = None


def resolve(db: Session, postal_code: str) -> ServiceAreaResolution:
    """Look up delivery terms for a postal code.

    Only an exact match on an active service area counts. Anything else,
    inactive or unknown, is reported as not serviceable.
    """
    code = (postal_code or "").strip()
    if not code:
        return ServiceAreaResolution(postal_code=code, is_serviceable=False)

    area = db.query(ServiceArea).filter(
        ServiceArea.postal_code == code,
        ServiceArea.is_active.is_(True),
    ).first()
    if not area:
        return ServiceAreaResolution(postal_code=code, is_serviceable=False)

    return ServiceAreaResolution(
        postal_code=code,
        is_serviceable=True,
        terms=DeliveryTerms(
            delivery_fee=float(area.delivery_fee or 0),
            min_order_value=float(area.min_order_value or 0),
            eta_label=area.delivery_eta_label,
        ),
    )
