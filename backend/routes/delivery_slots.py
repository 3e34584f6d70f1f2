# backend/routes/delivery_slots.py
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas.delivery_slot import DeliverySlotOut
from services import delivery_slots

router = APIRouter(prefix="/delivery-slots", tags=["Delivery Slots"])

# Public list of active slots, earliest first; capacity is not tracked per day yet
@router.get("", response_model=List[DeliverySlotOut])
def list_delivery_slots(db: Session = Depends(get_db)):
    return [
        DeliverySlotOut(
            id=slot.id,
            name=slot.name,
            start_time=slot.start_time,
            end_time=slot.end_time,
            label=slot.label,
            remaining_capacity=slot.max_orders,
        )
        for slot in delivery_slots.list_active(db)
    ]
