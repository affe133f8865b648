from datetime import datetime
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import is_admin, require_admin, require_auth, require_claims
from cloudkitchen.models.core import Review
from cloudkitchen.schemas.reviews import AdminResponseIn, ReviewIn, SingleFoodRatingIn
from cloudkitchen.services import ratings
from cloudkitchen.services.events import RATING_SUBMITTED, bus
from cloudkitchen.services.orders import get_order
from cloudkitchen.util.clock import as_utc

router = APIRouter(prefix="/reviews", tags=["reviews"])


def _own_order(db: Session, order_id: str, sub: str):
    o = get_order(db, order_id)
    if o.user_id != sub:
        raise HTTPException(status_code=403, detail="You can only rate your own orders")
    return o


@router.post("/")
def submit_review(body: ReviewIn, background: BackgroundTasks, db: Session = Depends(get_db),
                  sub: str = Depends(require_auth)):
    o = _own_order(db, body.order_id, sub)
    r = ratings.submit_review(
        db, o, sub, [fr.model_dump() for fr in body.food_ratings],
        body.delivery_rating, body.overall_rating, body.comment,
    )
    payload = ratings.review_payload(db, r)
    background.add_task(bus.publish, RATING_SUBMITTED, {"order_id": o.id, "review": payload})
    return payload


@router.post("/food-rating")
def rate_food(body: SingleFoodRatingIn, background: BackgroundTasks, db: Session = Depends(get_db),
              sub: str = Depends(require_auth)):
    o = _own_order(db, body.order_id, sub)
    agg = ratings.rate_food(db, o, sub, body.food_id, body.rating, body.comment)
    out = {"food_id": body.food_id, "avg_rating": float(agg["avg_rating"]), "rating_count": agg["rating_count"]}
    background.add_task(bus.publish, RATING_SUBMITTED, {"order_id": o.id, **out})
    return out


@router.get("/order/{order_id}")
def review_by_order(order_id: str, db: Session = Depends(get_db), claims: dict = Depends(require_claims)):
    o = get_order(db, order_id)
    if o.user_id != claims["sub"] and not is_admin(claims):
        raise HTTPException(status_code=403, detail="Not your order")
    return ratings.review_payload(db, ratings.review_for_order(db, order_id))


@router.get("/admin/all")
def list_reviews(
    rating: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    sort: Literal["newest", "oldest", "highest", "lowest"] = "newest",
    db: Session = Depends(get_db),
    sub: str = Depends(require_admin),
):
    q = db.query(Review)
    if rating:
        q = q.filter(Review.overall_rating == rating)
    if start:
        q = q.filter(Review.created_at >= as_utc(start))
    if end:
        q = q.filter(Review.created_at <= as_utc(end))
    order_by = {
        "newest": (Review.created_at.desc(),),
        "oldest": (Review.created_at.asc(),),
        "highest": (Review.overall_rating.desc(), Review.created_at.desc()),
        "lowest": (Review.overall_rating.asc(), Review.created_at.desc()),
    }[sort]
    return [ratings.review_payload(db, r) for r in q.order_by(*order_by).all()]


@router.put("/admin/{review_id}/response")
def respond(review_id: str, body: AdminResponseIn, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return ratings.review_payload(db, ratings.set_admin_response(db, review_id, body.response))


@router.get("/admin/dish-ratings")
def dish_ratings(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return ratings.dish_ratings(db)


@router.get("/admin/stats")
def review_stats(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return ratings.review_stats(db)


@router.post("/admin/recompute")
def recompute(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return {"recomputed": ratings.recompute_all(db)}
