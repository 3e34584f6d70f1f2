from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from models.order import OrderStatus, PaymentMethod, PaymentStatus


# Input schema for placing an order from the current cart
class OrderCreatePayload(BaseModel):
    address_id: int
    payment_method: PaymentMethod
    coupon_code: Optional[str] = Field(None, max_length=50)
    delivery_slot_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=500)


# Client-side handle for the gateway checkout widget
class PaymentSessionOut(BaseModel):
    session_id: str
    client_token: str
    amount: int
    currency: str
    key_id: Optional[str] = None


# Result of a successful placement
class OrderPlacedResponse(BaseModel):
    order_id: int
    order_number: str
    total: float
    status: OrderStatus
    payment_status: PaymentStatus
    payment_session: Optional[PaymentSessionOut] = None


# Signed payment reference returned by the gateway checkout
class PaymentConfirmPayload(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


# Output schema for an individual order line item
class OrderItemOut(BaseModel):
    product_id: int
    product_name: str
    unit: Optional[str] = None
    qty: int
    unit_price: float
    line_total: float

    class Config:
        from_attributes = True


class OrderTimelineOut(BaseModel):
    status: OrderStatus
    title: str
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ShippingAddressOut(BaseModel):
    recipient_name: str
    phone: str
    line1: str
    line2: Optional[str] = None
    landmark: Optional[str] = None
    city: str
    state: str
    postal_code: str


# Output schema representing the full order details
class OrderResponse(BaseModel):
    id: int
    order_number: str
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    subtotal: float
    discount: float
    delivery_fee: float
    total: float
    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    delivery_slot_label: Optional[str] = None
    shipping_address: ShippingAddressOut
    created_at: datetime
    items: List[OrderItemOut]
    timeline: List[OrderTimelineOut] = []


# Schema for paginated order lists
class OrdersPage(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int


# Schema for back-office status updates
class OrderStatusPatch(BaseModel):
    status: OrderStatus
    payment_status: Optional[PaymentStatus] = None


class ReclaimResponse(BaseModel):
    reclaimed_order_ids: List[int]
