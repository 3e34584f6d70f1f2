# backend/services/catalog.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from models.product import Product


@dataclass(frozen=True)
class PriceAndStock:
    product_id: int
    name: str
    unit: Optional[str]
    price: float
    stock: int
    is_active: bool


def get_price_and_stock(db: Session, product_id: int) -> Optional[PriceAndStock]:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        return None
    return PriceAndStock(
        product_id=product.id,
        name=product.name,
        unit=product.unit,
        price=float(product.price),
        stock=int(product.stock_quantity or 0),
        is_active=bool(product.is_active),
    )


def decrement_stock(db: Session, product_id: int, qty: int) -> bool:
    # Conditional decrement, no row changes when it would go negative
    updated = db.query(Product).filter(
        Product.id == product_id,
        Product.is_active.is_(True),
        Product.stock_quantity >= qty,
    ).update({Product.stock_quantity: Product.stock_quantity - qty}, synchronize_session=False)
    return updated == 1


def restore_stock(db: Session, product_id: int, qty: int) -> None:
    db.query(Product).filter(Product.id == product_id).update(
        {Product.stock_quantity: Product.stock_quantity + qty}, synchronize_session=False
    )


def current_stock(db: Session, product_id: int) -> int:
    stock = db.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
    return int(stock or 0)
