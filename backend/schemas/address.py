from pydantic import BaseModel, Field
from typing import Optional

from models.address import AddressType


class AddressBase(BaseModel):
    type: AddressType = AddressType.HOME
    recipient_name: str = Field(min_length=1)
    phone: str = Field(min_length=5, max_length=20)
    line1: str = Field(min_length=1)
    line2: Optional[str] = None
    landmark: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=3, max_length=10)
    is_default: bool = False


class AddressCreate(AddressBase):
    pass


# Partial update, every field optional
class AddressUpdate(BaseModel):
    type: Optional[AddressType] = None
    recipient_name: Optional[str] = None
    phone: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    landmark: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    is_default: Optional[bool] = None


class AddressOut(AddressBase):
    id: int

    class Config:
        from_attributes = True
