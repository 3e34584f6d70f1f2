# backend/services/cart_snapshot.py
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from config import settings
from services import cart_store, catalog
from services.errors import EmptyCart, InsufficientStock, ProductUnavailable, PriceChanged


@dataclass(frozen=True)
class LineItem:
    product_id: int
    product_name: str
    unit: Optional[str]
    qty: int
    unit_price: float
    cart_item_id: Optional[int] = None

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.qty, 2)


def subtotal_of(lines: List[LineItem]) -> float:
    return round(sum(line.line_total for line in lines), 2)


def build_snapshot(db: Session, user_id: int,
                   price_tolerance_percent: Optional[float] = None) -> List[LineItem]:
    """Price the user's persisted cart against the live catalog.

    Lines are priced at the current catalog price, not the price remembered
    when the item was added. Stock is only read here; the binding check is the
    conditional decrement at commit.
    """
    if price_tolerance_percent is None:
        price_tolerance_percent = settings.PRICE_CHANGE_TOLERANCE_PERCENT

    cart_lines = cart_store.get_lines(db, user_id)
    if not cart_lines:
        raise EmptyCart()

    snapshot: List[LineItem] = []
    for line in cart_lines:
        product = catalog.get_price_and_stock(db, line.product_id)
        if product is None or not product.is_active:
            raise ProductUnavailable(product_id=line.product_id)

        if product.stock < line.qty:
            raise InsufficientStock(
                f"Only {product.stock} units of {product.name} available",
                product_id=product.product_id,
                available=product.stock,
            )

        previous = line.unit_price_snapshot
        if price_tolerance_percent is not None and previous:
            drift = abs(product.price - previous) / previous * 100.0
            if drift > price_tolerance_percent:
                raise PriceChanged(
                    f"The price of {product.name} changed from {previous} to {product.price}",
                    product_id=product.product_id,
                    previous_price=previous,
                    current_price=product.price,
                )

        snapshot.append(LineItem(
            product_id=product.product_id,
            product_name=product.name,
            unit=product.unit,
            qty=int(line.qty),
            unit_price=round(product.price, 2),
            cart_item_id=line.id,
        ))
    return snapshot
