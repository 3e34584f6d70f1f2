# backend/models/delivery_slot.py
from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from database import Base

# Daily delivery window offered at checkout, times are "HH:MM" in store local time
class DeliverySlot(Base):
    __tablename__ = "delivery_slots"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    max_orders = Column(Integer, CheckConstraint("max_orders > 0"), nullable=False, default=50)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def label(self) -> str:
        return f"{self.name} ({self.start_time}-{self.end_time})"
