# backend/services/delivery_slots.py
from typing import List, Optional

from sqlalchemy.orm import Session

from models.delivery_slot import DeliverySlot
from services.errors import DeliverySlotUnavailable


def list_active(db: Session) -> List[DeliverySlot]:
    return (
        db.query(DeliverySlot)
        .filter(DeliverySlot.is_active.is_(True))
        .order_by(DeliverySlot.start_time, DeliverySlot.id)
        .all()
    )


def get_active(db: Session, slot_id: Optional[int]) -> Optional[DeliverySlot]:
    """The chosen slot, or None when the customer left it to the store."""
    if slot_id is None:
        return None
    slot = db.query(DeliverySlot).filter(DeliverySlot.id == slot_id).first()
    if not slot or not slot.is_active:
        raise DeliverySlotUnavailable(delivery_slot_id=slot_id)
    return slot
