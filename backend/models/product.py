# backend/models/product.py
from sqlalchemy import Column, Integer, String, Float, Boolean, CheckConstraint
from database import Base

# Model Product
# Catalog entry as seen by checkout: current price, stock on hand and
# whether it can still be sold. Stock can never go below zero.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    unit = Column(String, nullable=True)  # e.g. "1 kg", "500 ml"

    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)
    stock_quantity = Column(Integer, CheckConstraint("stock_quantity >= 0"), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
