# backend/models/users.py
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from database import Base

# Represents a storefront account (customer or back-office staff)
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="customer")
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    wallet = relationship("Wallet", back_populates="user", uselist=False)
