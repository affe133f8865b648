from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import require_admin, require_auth
from cloudkitchen.errors import ValidationError
from cloudkitchen.models.core import Coupon
from cloudkitchen.schemas.common import Msg
from cloudkitchen.schemas.coupons import CouponIn, CouponUpdate, CouponValidateIn
from cloudkitchen.services import coupons
from cloudkitchen.util.money import _money

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.get("/")
def list_coupons(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return [coupons.coupon_payload(c) for c in db.query(Coupon).order_by(Coupon.created_at.desc()).all()]


@router.post("/")
def create_coupon(body: CouponIn, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return coupons.coupon_payload(coupons.create_coupon(db, body.model_dump()))


@router.put("/{coupon_id}")
def update_coupon(coupon_id: str, body: CouponUpdate, db: Session = Depends(get_db),
                  sub: str = Depends(require_admin)):
    return coupons.coupon_payload(coupons.update_coupon(db, coupon_id, body.model_dump(exclude_unset=True)))


@router.delete("/{coupon_id}", response_model=Msg)
def delete_coupon(coupon_id: str, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    coupons.delete_coupon(db, coupon_id)
    return Msg(message="Coupon deleted")


@router.post("/validate")
def validate_coupon(body: CouponValidateIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    c = coupons.find_coupon(db, body.code)
    check = coupons.validate(c, body.order_value)
    if not check.valid:
        raise ValidationError(check.reason)
    return {
        "valid": True,
        "code": c.code,
        "discount_type": c.discount_type.value,
        "discount": _money(coupons.applied_discount(c, body.order_value)),
        "description": c.description,
    }
