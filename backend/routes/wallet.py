# backend/routes/wallet.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from models.wallet import WalletTransaction
from schemas.wallet import WalletOut
from services import wallet as wallet_service
from utils.tokenJWT import get_current_user

router = APIRouter(prefix="/wallet", tags=["Wallet"])

# Balance plus the most recent ledger entries
@router.get("", response_model=WalletOut)
def get_wallet(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    wallet = wallet_service.get_or_create_wallet(db, current_user.id)
    db.commit()
    transactions = (
        db.query(WalletTransaction)
        .filter(WalletTransaction.wallet_id == wallet.id)
        .order_by(WalletTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return WalletOut(balance=round(wallet.balance, 2), transactions=transactions)
