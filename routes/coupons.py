from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db, guarded_write
from core.errors import NotFoundError, ValidationError
from core.tenancy import get_current_store, require_feature
from models.coupon import Coupon
from models.store import Store
from schemas.coupon import CouponCreate, CouponOut, CouponUpdate

router = APIRouter(prefix="/coupons", tags=["coupons"], dependencies=[Depends(require_feature("coupons"))])


def _get_coupon(db: Session, store: Store, coupon_id: int) -> Coupon:
    coupon = db.query(Coupon).filter(Coupon.store_id == store.id, Coupon.id == coupon_id).one_or_none()
    if not coupon:
        raise NotFoundError("Coupon not found", coupon_id=coupon_id)
    return coupon


@router.get("/", response_model=List[CouponOut])
def list_coupons(store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    return db.query(Coupon).filter(Coupon.store_id == store.id).order_by(Coupon.created_at.desc()).all()


@router.post("/", response_model=CouponOut, status_code=201)
def create_coupon(data: CouponCreate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    code = data.code.strip().upper()
    if db.query(Coupon.id).filter(Coupon.store_id == store.id, Coupon.code == code).first() is not None:
        raise ValidationError("Coupon code already exists", code=code)
    coupon = Coupon(store_id=store.id, **{**data.dict(), "code": code})
    with guarded_write(db, "create coupon", store_id=store.id):
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
    return coupon


@router.put("/{coupon_id}", response_model=CouponOut)
def update_coupon(
    coupon_id: int, data: CouponUpdate, store: Store = Depends(get_current_store), db: Session = Depends(get_db)
):
    coupon = _get_coupon(db, store, coupon_id)
    changes = data.dict(exclude_unset=True)
    if "valid_until" in changes and changes["valid_until"] < coupon.valid_from:
        raise ValidationError(
            "valid_until must be after valid_from", valid_from=coupon.valid_from.isoformat(), coupon_id=coupon.id
        )
    for key, value in changes.items():
        setattr(coupon, key, value)
    with guarded_write(db, "update coupon", coupon_id=coupon.id):
        db.commit()
        db.refresh(coupon)
    return coupon


@router.delete("/{coupon_id}", status_code=204)
def delete_coupon(coupon_id: int, store: Store = Depends(get_current_store), db: Session = Depends(get_db)):
    coupon = _get_coupon(db, store, coupon_id)
    # Orders keep their discount; the reference is cleared by the foreign key
    with guarded_write(db, "delete coupon", coupon_id=coupon.id):
        db.delete(coupon)
        db.commit()
    return None
