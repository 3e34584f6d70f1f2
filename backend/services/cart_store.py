# backend/services/cart_store.py
from typing import List, Optional

from sqlalchemy.orm import Session

from models.cart import CART_OPEN, Cart, CartItem


def get_open_cart(db: Session, user_id: int, create: bool = False) -> Optional[Cart]:
    # Retrieve active cart, optionally creating a new one
    cart = db.query(Cart).filter(Cart.user_id == user_id, Cart.status == CART_OPEN).first()
    if not cart and create:
        cart = Cart(user_id=user_id, status=CART_OPEN)
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart


def get_lines(db: Session, user_id: int) -> List[CartItem]:
    return (
        db.query(CartItem)
        .join(Cart, Cart.id == CartItem.cart_id)
        .filter(Cart.user_id == user_id, Cart.status == CART_OPEN)
        .order_by(CartItem.id)
        .all()
    )


def clear(db: Session, user_id: int) -> int:
    # Caller owns the transaction
    cart_ids = [c.id for c in db.query(Cart.id).filter(Cart.user_id == user_id, Cart.status == CART_OPEN).all()]
    if not cart_ids:
        return 0
    return db.query(CartItem).filter(CartItem.cart_id.in_(cart_ids)).delete(synchronize_session=False)


def consume_lines(db: Session, user_id: int, lines) -> int:
    """Delete exactly the priced cart lines, matching id and quantity.

    Returns how many rows went away. A short count means another checkout or
    a cart edit got there first. Caller owns the transaction.
    """
    cart_ids = [c.id for c in db.query(Cart.id).filter(Cart.user_id == user_id, Cart.status == CART_OPEN).all()]
    if not cart_ids:
        return 0
    consumed = 0
    for line in lines:
        consumed += db.query(CartItem).filter(
            CartItem.id == line.cart_item_id,
            CartItem.qty == line.qty,
            CartItem.cart_id.in_(cart_ids),
        ).delete(synchronize_session=False)
    return consumed


def restore_lines(db: Session, user_id: int, items) -> None:
    """Put order lines back into the cart after an unpaid order is cancelled.

    Products already in the cart are left as the user has them now.
    Caller owns the transaction.
    """
    cart = db.query(Cart).filter(Cart.user_id == user_id, Cart.status == CART_OPEN).first()
    if not cart:
        cart = Cart(user_id=user_id, status=CART_OPEN)
        db.add(cart)
        db.flush()
    present = {pid for (pid,) in db.query(CartItem.product_id).filter(CartItem.cart_id == cart.id).all()}
    for item in items:
        if item.product_id in present:
            continue
        db.add(CartItem(cart_id=cart.id, product_id=item.product_id, qty=item.qty,
                        unit_price_snapshot=item.unit_price))
