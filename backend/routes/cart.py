# backend/routes/cart.py
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log
from models.users import User
from models.product import Product
from models.address import Address
from models.cart import Cart, CartItem
from schemas.cart import CartAddItem, CartUpdateItem, CartOut, CartItemOut
from services import cart_store, service_areas
from services.checkout import compute_delivery_fee

router = APIRouter(prefix="/cart", tags=["Cart"])

def _estimated_delivery_fee(db: Session, user_id: int, subtotal: float) -> float:
    # Estimate against the default address, the real fee is fixed at checkout
    address = db.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True)).first()
    if not address:
        return 0.0
    resolution = service_areas.resolve(db, address.postal_code)
    if not resolution.is_serviceable:
        return 0.0
    return compute_delivery_fee(subtotal, resolution.terms.delivery_fee)

def _cart_to_out(db: Session, cart: Cart) -> CartOut:
    items_out = []
    subtotal = 0.0

    for it in cart.items:
        # Show the live catalog price, checkout charges that one
        price = it.product.price if it.product else it.unit_price_snapshot
        line_total = price * it.qty
        subtotal += line_total

        items_out.append(CartItemOut(
            id=it.id,
            product_id=it.product_id,
            name=it.product.name if it.product else "",
            qty=it.qty,
            unit_price=round(price, 2),
            line_total=round(line_total, 2),
        ))

    subtotal = round(subtotal, 2)
    delivery_fee = _estimated_delivery_fee(db, cart.user_id, subtotal) if items_out else 0.0
    return CartOut(items=items_out, subtotal=subtotal, delivery_fee=delivery_fee,
                   total=round(subtotal + delivery_fee, 2))

@router.get("", response_model=CartOut)
def get_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = cart_store.get_open_cart(db, current_user.id, create=True)
    return _cart_to_out(db, cart)

@router.post("/add", response_model=CartOut, status_code=status.HTTP_200_OK)
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = cart_store.get_open_cart(db, current_user.id, create=True)

    product = db.query(Product).filter(Product.id == payload.product_id, Product.is_active.is_(True)).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    item = db.query(CartItem).filter(
        CartItem.cart_id == cart.id, CartItem.product_id == payload.product_id
    ).first()
    new_qty = payload.qty + (item.qty if item else 0)

    # Validate stock availability, checkout re-checks it atomically
    if new_qty > product.stock_quantity:
        raise HTTPException(status_code=400, detail="Insufficient stock")

    if item:
        item.qty = new_qty
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=product.id,
            qty=payload.qty,
            unit_price_snapshot=product.price,
        )
        db.add(item)

    db.commit()
    db.refresh(cart)

    out = _cart_to_out(db, cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_ADD",
        resource="cart",
        status="SUCCESS",
        ip=request.client.host if request.client else None,
        meta={"product_id": product.id, "qty": payload.qty, "cart_items": len(out.items), "subtotal": out.subtotal},
    )
    return out

@router.put("/items/{item_id}", response_model=CartOut)
def update_cart_item(
    item_id: int,
    payload: CartUpdateItem,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = cart_store.get_open_cart(db, current_user.id, create=True)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    # Validate stock for the new quantity
    product = db.query(Product).filter(Product.id == item.product_id).first()
    if product and payload.qty > product.stock_quantity:
        raise HTTPException(status_code=400, detail="Insufficient stock")

    item.qty = payload.qty
    db.commit()
    db.refresh(cart)
    return _cart_to_out(db, cart)

@router.delete("/items/{item_id}", response_model=CartOut)
def delete_cart_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = cart_store.get_open_cart(db, current_user.id, create=True)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    db.delete(item)
    db.commit()
    db.refresh(cart)
    return _cart_to_out(db, cart)

@router.delete("", response_model=CartOut)
def clear_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart_store.clear(db, current_user.id)
    db.commit()
    cart = cart_store.get_open_cart(db, current_user.id, create=True)
    db.refresh(cart)
    return _cart_to_out(db, cart)
