# backend/services/wallet.py
from sqlalchemy.orm import Session

from models.wallet import Wallet, WalletTransaction, WalletTransactionType
from services.errors import InsufficientWalletBalance


def get_or_create_wallet(db: Session, user_id: int) -> Wallet:
    wallet = db.query(Wallet).filter(Wallet.user_id == user_id).first()
    if not wallet:
        wallet = Wallet(user_id=user_id, balance=0)
        db.add(wallet)
        db.flush()
    return wallet


def debit(db: Session, user_id: int, amount: float, *, reference_id=None, description=None) -> WalletTransaction:
    """Conditional debit inside the caller's transaction."""
    amount = round(amount, 2)
    updated = db.query(Wallet).filter(
        Wallet.user_id == user_id,
        Wallet.balance >= amount,
    ).update({Wallet.balance: Wallet.balance - amount}, synchronize_session=False)

    wallet = db.query(Wallet).filter(Wallet.user_id == user_id).populate_existing().first()
    if not updated:
        raise InsufficientWalletBalance(
            balance=round(wallet.balance, 2) if wallet else 0.0,
            required=amount,
        )

    entry = WalletTransaction(
        wallet_id=wallet.id,
        type=WalletTransactionType.DEBIT,
        amount=amount,
        description=description,
        reference_id=str(reference_id) if reference_id is not None else None,
    )
    db.add(entry)
    return entry


def credit(db: Session, user_id: int, amount: float, *, reference_id=None, description=None) -> WalletTransaction:
    amount = round(amount, 2)
    wallet = get_or_create_wallet(db, user_id)
    db.query(Wallet).filter(Wallet.id == wallet.id).update(
        {Wallet.balance: Wallet.balance + amount}, synchronize_session=False
    )
    entry = WalletTransaction(
        wallet_id=wallet.id,
        type=WalletTransactionType.CREDIT,
        amount=amount,
        description=description,
        reference_id=str(reference_id) if reference_id is not None else None,
    )
    db.add(entry)
    return entry
