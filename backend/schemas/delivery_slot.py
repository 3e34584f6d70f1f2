from pydantic import BaseModel


class DeliverySlotOut(BaseModel):
    id: int
    name: str
    start_time: str
    end_time: str
    label: str
    available: bool = True
    remaining_capacity: int
