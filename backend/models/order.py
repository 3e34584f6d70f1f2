# backend/models/order.py
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from database import Base
from utils.clock import utcnow
import enum

class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    PACKED = "PACKED"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

class PaymentMethod(str, enum.Enum):
    COD = "COD"
    WALLET = "WALLET"
    ONLINE = "ONLINE"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)

    # Amounts
    subtotal = Column(Float, nullable=False)
    discount = Column(Float, nullable=False, default=0)
    delivery_fee = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False)
    coupon_code = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    # Delivery window chosen at checkout, label copied at commit time
    delivery_slot_id = Column(Integer, ForeignKey("delivery_slots.id"), nullable=True)
    delivery_slot_label = Column(String, nullable=True)

    # Delivery address copied at commit time
    shipping_recipient_name = Column(String, nullable=False)
    shipping_phone = Column(String, nullable=False)
    shipping_line1 = Column(String, nullable=False)
    shipping_line2 = Column(String, nullable=True)
    shipping_landmark = Column(String, nullable=True)
    shipping_city = Column(String, nullable=False)
    shipping_state = Column(String, nullable=False)
    shipping_postal_code = Column(String, nullable=False)

    # Payment gateway integration details
    gateway_order_id = Column(String, nullable=True, index=True)
    gateway_payment_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    timeline = relationship("OrderTimeline", back_populates="order", cascade="all, delete-orphan",
                            order_by="OrderTimeline.id")

    def add_timeline(self, status, title, description=None):
        self.timeline.append(OrderTimeline(status=OrderStatus(status).value, title=title, description=description))

# Line item copied from the cart at commit time
class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String, nullable=False)
    unit = Column(String, nullable=True)
    qty = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    line_total = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")

# History of status changes shown to the customer
class OrderTimeline(Base):
    __tablename__ = "order_timeline"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    status = Column(String(30), nullable=False)  # OrderStatus value at the time of the entry
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    order = relationship("Order", back_populates="timeline")
