from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import is_admin, require_auth, require_claims
from cloudkitchen.services.orders import find_orders, get_order, order_payload

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/mine")
def my_orders(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    """The caller's orders, newest first. Archived orders stay visible to their owner."""
    return [order_payload(db, o) for o in find_orders(db, user_id=sub, include_archived=True)]


@router.get("/{order_id}")
def get_one(order_id: str, db: Session = Depends(get_db), claims: dict = Depends(require_claims)):
    o = get_order(db, order_id)
    if o.user_id != claims["sub"] and not is_admin(claims):
        raise HTTPException(status_code=403, detail="Not your order")
    return order_payload(db, o)
