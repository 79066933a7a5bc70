from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log, client_ip
from models.users import User
from models.address import UserAddress
from schemas.address import AddressIn, AddressOut

router = APIRouter(prefix="/addresses", tags=["Addresses"])


def _own_address(db: Session, user: User, address_id: int) -> UserAddress:
    addr = db.query(UserAddress).filter(UserAddress.id == address_id, UserAddress.user_id == user.id).first()
    if not addr:
        raise HTTPException(status_code=404, detail="Address not found")
    return addr


@router.get("", response_model=List[AddressOut])
def list_addresses(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return (
        db.query(UserAddress)
        .filter(UserAddress.user_id == current_user.id)
        .order_by(UserAddress.created_at.desc(), UserAddress.id.desc())
        .all()
    )


@router.post("", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
def add_address(
    payload: AddressIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    addr = UserAddress(user_id=current_user.id, **payload.model_dump())
    db.add(addr)
    db.commit()
    db.refresh(addr)
    write_log(db, user_id=current_user.id, action="ADDRESS_CREATE", resource="addresses", status="SUCCESS",
              ip=client_ip(request), meta={"address_id": addr.id})
    return addr


@router.put("/{address_id}", response_model=AddressOut)
def update_address(
    address_id: int,
    payload: AddressIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    addr = _own_address(db, current_user, address_id)
    for key, value in payload.model_dump().items():
        setattr(addr, key, value)
    db.commit()
    db.refresh(addr)
    write_log(db, user_id=current_user.id, action="ADDRESS_UPDATE", resource="addresses", status="SUCCESS",
              ip=client_ip(request), meta={"address_id": addr.id})
    return addr


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_address(
    address_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    addr = _own_address(db, current_user, address_id)
    db.delete(addr)
    db.commit()
    # Orders placed with this address keep their shipping snapshot
    write_log(db, user_id=current_user.id, action="ADDRESS_DELETE", resource="addresses", status="SUCCESS",
              ip=client_ip(request), meta={"address_id": address_id})
