from pydantic import BaseModel
from typing import Optional


class DeliveryTermsOut(BaseModel):
    delivery_fee: float
    min_order_value: float
    eta_label: Optional[str] = None


class ServiceabilityResponse(BaseModel):
    postal_code: str
    is_serviceable: bool
    terms: Optional[DeliveryTermsOut] = None
