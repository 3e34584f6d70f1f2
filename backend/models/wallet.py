# backend/models/wallet.py
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base
from utils.clock import utcnow
import enum

class WalletTransactionType(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"

# Store credit balance, one per user. Debits are conditional updates so the
# balance never goes negative.
class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    balance = Column(Float, CheckConstraint("balance >= 0"), nullable=False, default=0)

    user = relationship("User", back_populates="wallet")
    transactions = relationship("WalletTransaction", back_populates="wallet",
                                order_by="WalletTransaction.id.desc()")

# Ledger entry for every balance change
class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), index=True, nullable=False)
    type = Column(Enum(WalletTransactionType), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(String, nullable=True)
    reference_id = Column(String, nullable=True)  # order id the entry belongs to
    created_at = Column(DateTime, default=utcnow, nullable=False)

    wallet = relationship("Wallet", back_populates="transactions")
