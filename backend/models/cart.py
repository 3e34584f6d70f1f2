# backend/models/cart.py
from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Float, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

CART_OPEN = "open"

# A customer's basket. Checkout empties the open cart, an abandoned online
# payment puts its lines back.
class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String, default=CART_OPEN, index=True)
    created_at = Column(DateTime, server_default=func.now())

    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan",
                         order_by="CartItem.id")


# One product line. unit_price_snapshot is the catalog price when the line was
# added; checkout charges the live price and only uses this to detect drift.
class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cartitem_cart_product"),
        CheckConstraint("qty > 0", name="ck_cartitem_qty_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    qty = Column(Integer, nullable=False, default=1)
    unit_price_snapshot = Column(Float, nullable=False)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
