# backend/models/service_area.py
from sqlalchemy import Column, Integer, String, Float, Boolean, CheckConstraint
from database import Base

# Admin-owned delivery coverage, one row per postal code
class ServiceArea(Base):
    __tablename__ = "service_areas"

    id = Column(Integer, primary_key=True, index=True)
    postal_code = Column(String, unique=True, nullable=False, index=True)
    area = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)

    delivery_eta_label = Column(String, nullable=True)  # e.g. "30-45 mins"
    delivery_fee = Column(Float, CheckConstraint("delivery_fee >= 0"), nullable=False, default=0)
    min_order_value = Column(Float, CheckConstraint("min_order_value >= 0"), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
