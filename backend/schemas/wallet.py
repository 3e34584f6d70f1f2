from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from models.wallet import WalletTransactionType


class WalletTransactionOut(BaseModel):
    id: int
    type: WalletTransactionType
    amount: float
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WalletOut(BaseModel):
    balance: float
    transactions: List[WalletTransactionOut]
