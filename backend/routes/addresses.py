# backend/routes/addresses.py
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models.address import Address
from models.users import User
from schemas.address import AddressCreate, AddressUpdate, AddressOut
from utils.tokenJWT import get_current_user

router = APIRouter(prefix="/addresses", tags=["Addresses"])

def _get_own_address(db: Session, address_id: int, user_id: int) -> Address:
    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user_id).first()
    if not address:
        raise HTTPException(status_code=404, detail="Address not found")
    return address

def _unset_other_defaults(db: Session, user_id: int, keep_id=None):
    # Only one default per user, the newest choice wins
    q = db.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True))
    if keep_id is not None:
        q = q.filter(Address.id != keep_id)
    q.update({Address.is_default: False}, synchronize_session=False)

def _newest_address(db: Session, user_id: int, exclude_id=None):
    q = db.query(Address).filter(Address.user_id == user_id)
    if exclude_id is not None:
        q = q.filter(Address.id != exclude_id)
    return q.order_by(Address.id.desc()).first()

@router.get("", response_model=List[AddressOut])
def list_addresses(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.query(Address)
        .filter(Address.user_id == current_user.id)
        .order_by(Address.is_default.desc(), Address.id.desc())
        .all()
    )

@router.post("", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = payload.model_dump()
    data["postal_code"] = data["postal_code"].strip()

    # First address becomes the default
    has_any = db.query(Address.id).filter(Address.user_id == current_user.id).first() is not None
    if not has_any:
        data["is_default"] = True
    if data["is_default"]:
        _unset_other_defaults(db, current_user.id)

    address = Address(user_id=current_user.id, **data)
    db.add(address)
    db.commit()
    db.refresh(address)
    return address

@router.put("/{address_id}", response_model=AddressOut)
def update_address(
    address_id: int,
    payload: AddressUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    address = _get_own_address(db, address_id, current_user.id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("postal_code"):
        changes["postal_code"] = changes["postal_code"].strip()

    if changes.get("is_default"):
        _unset_other_defaults(db, current_user.id, keep_id=address.id)
    elif changes.get("is_default") is False and address.is_default:
        # Hand the default to another address; a lone address stays the default
        successor = _newest_address(db, current_user.id, exclude_id=address.id)
        if successor:
            successor.is_default = True
        else:
            changes.pop("is_default")
    for field, value in changes.items():
        setattr(address, field, value)

    db.commit()
    db.refresh(address)
    return address

@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_address(
    address_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    address = _get_own_address(db, address_id, current_user.id)
    was_default = address.is_default
    db.delete(address)
    db.flush()

    # Promote the most recent remaining address
    if was_default:
        successor = _newest_address(db, current_user.id)
        if successor:
            successor.is_default = True
    db.commit()
