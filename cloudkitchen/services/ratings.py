"""Reviews and the per-food rating cache.

``food.avg_rating`` / ``food.rating_count`` are derived from ``food_rating`` rows.
Any mutation that touches an existing rating row goes through ``recompute_for_food``.
The incremental path is only used for a standalone rating on an order that has no
review, and the next full recompute absorbs it.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from cloudkitchen.errors import ConflictError, NotFoundError, ValidationError
from cloudkitchen.models.core import Food, FoodRating, Order, OrderItem, OrderStatus, Review
from cloudkitchen.util.clock import as_utc
from cloudkitchen.util.money import to_decimal

logger = logging.getLogger(__name__)

TENTH = Decimal("0.1")


def round1(x) -> Decimal:
    return to_decimal(x).quantize(TENTH, rounding=ROUND_HALF_UP)


def check_rating(value, label: str = "rating") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError(f"{label} must be an integer between 1 and 5")
    return value


def incremental_update(current_avg, current_count: int, new_rating: int) -> dict:
    count = int(current_count or 0)
    avg = (to_decimal(current_avg) * count + new_rating) / (count + 1)
    return {"avg_rating": round1(avg), "rating_count": count + 1}


def recompute_for_food(db: Session, food_id: str) -> dict:
    """Mean of every rating row for the food, reviewed or standalone. Caller commits."""
    total, count = (
        db.query(func.coalesce(func.sum(FoodRating.rating), 0), func.count(FoodRating.id))
        .filter(FoodRating.food_id == food_id)
        .one()
    )
    avg = round1(Decimal(int(total)) / count) if count else Decimal("0.0")
    food = db.get(Food, food_id)
    if food is not None:
        food.avg_rating = avg
        food.rating_count = count
    logger.info("rating for food %s recomputed: %s over %d", food_id, avg, count)
    return {"avg_rating": avg, "rating_count": count}


def recompute_all(db: Session) -> int:
    ids = {fid for (fid,) in db.query(Food.id)} | {fid for (fid,) in db.query(FoodRating.food_id).distinct()}
    for fid in ids:
        recompute_for_food(db, fid)
    db.commit()
    return len(ids)


def _ordered_foods(db: Session, order_id: str) -> dict[str, str]:
    return {
        fid: name
        for fid, name in db.query(OrderItem.food_id, OrderItem.name)
        .filter(OrderItem.order_id == order_id, OrderItem.food_id.isnot(None))
    }


def _require_delivered(order: Order) -> None:
    if order.status != OrderStatus.DELIVERED:
        raise ValidationError("Only delivered orders can be rated")


def submit_review(
    db: Session,
    order: Order,
    user_id: str,
    food_ratings: list[dict],
    delivery_rating: int,
    overall_rating: int,
    comment: str | None = None,
) -> Review:
    _require_delivered(order)
    check_rating(delivery_rating, "delivery_rating")
    check_rating(overall_rating, "overall_rating")
    ordered = _ordered_foods(db, order.id)
    seen = set()
    for fr in food_ratings:
        check_rating(fr.get("rating"), "food rating")
        if fr["food_id"] not in ordered:
            raise ValidationError("Rated food is not part of this order")
        if fr["food_id"] in seen:
            raise ValidationError("Each food can only be rated once per review")
        seen.add(fr["food_id"])

    # flips false -> true once; the loser of a double submit gets 409
    res = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.has_review.is_(False))
        .values(has_review=True)
        .execution_options(synchronize_session=False)
    )
    if not res.rowcount:
        db.rollback()
        raise ConflictError("Order already has a review")

    review = Review(
        order_id=order.id, user_id=user_id, delivery_rating=delivery_rating,
        overall_rating=overall_rating, comment=comment,
    )
    db.add(review)
    db.flush()
    for fr in food_ratings:
        row = (
            db.query(FoodRating)
            .filter(FoodRating.order_id == order.id, FoodRating.food_id == fr["food_id"])
            .first()
        )
        if row is None:
            row = FoodRating(order_id=order.id, food_id=fr["food_id"], food_name=ordered[fr["food_id"]])
            db.add(row)
        row.review_id = review.id
        row.rating = fr["rating"]
        row.comment = fr.get("comment")
    # standalone ratings given earlier join the review
    db.query(FoodRating).filter(
        FoodRating.order_id == order.id, FoodRating.review_id.is_(None)
    ).update({FoodRating.review_id: review.id}, synchronize_session=False)
    db.flush()
    for fid in seen:
        recompute_for_food(db, fid)
    db.commit()
    db.refresh(order)
    return review


def rate_food(db: Session, order: Order, user_id: str, food_id: str, rating: int, comment: str | None = None) -> dict:
    """One food on one delivered order. Returns the food's new aggregate."""
    _require_delivered(order)
    check_rating(rating)
    ordered = _ordered_foods(db, order.id)
    if food_id not in ordered:
        raise ValidationError("Rated food is not part of this order")
    food = db.get(Food, food_id)
    if food is None:
        raise NotFoundError("Food not found")

    row = db.query(FoodRating).filter(FoodRating.order_id == order.id, FoodRating.food_id == food_id).first()
    review = db.query(Review).filter(Review.order_id == order.id).first()
    if row is not None or review is not None:
        if row is None:
            row = FoodRating(order_id=order.id, food_id=food_id, food_name=ordered[food_id], review_id=review.id)
            db.add(row)
        row.rating = rating
        row.comment = comment
        db.flush()
        agg = recompute_for_food(db, food_id)
    else:
        db.add(FoodRating(order_id=order.id, food_id=food_id, food_name=ordered[food_id],
                          rating=rating, comment=comment))
        agg = incremental_update(food.avg_rating, food.rating_count, rating)
        food.avg_rating = agg["avg_rating"]
        food.rating_count = agg["rating_count"]
    db.commit()
    logger.info("food %s rated %d on order %s by %s", food_id, rating, order.order_number, user_id)
    return agg


# --- queries ---------------------------------------------------------------

def review_for_order(db: Session, order_id: str) -> Review:
    r = db.query(Review).filter(Review.order_id == order_id).first()
    if not r:
        raise NotFoundError("Review not found")
    return r


def set_admin_response(db: Session, review_id: str, response: str) -> Review:
    r = db.get(Review, review_id)
    if not r:
        raise NotFoundError("Review not found")
    if len(response) > 300:
        raise ValidationError("Response must be at most 300 characters")
    r.admin_response = response
    db.commit()
    return r


def dish_ratings(db: Session) -> dict:
    rows = (
        db.query(
            FoodRating.food_id,
            func.max(FoodRating.food_name),
            func.sum(FoodRating.rating),
            func.count(FoodRating.id),
        )
        .group_by(FoodRating.food_id)
        .all()
    )
    dishes = [
        {
            "food_id": fid,
            "name": name,
            "avg_rating": float(round1(Decimal(int(total)) / count)),
            "rating_count": count,
        }
        for fid, name, total, count in rows
    ]
    dishes.sort(key=lambda d: (-d["avg_rating"], -d["rating_count"], d["name"] or ""))
    worst = sorted(dishes, key=lambda d: (d["avg_rating"], -d["rating_count"], d["name"] or ""))
    return {"best": dishes[:5], "worst": worst[:5], "all": dishes}


def review_stats(db: Session) -> dict:
    total = db.query(func.count(Review.id)).scalar() or 0
    if not total:
        return {"total_reviews": 0, "avg_overall": 0.0, "avg_delivery": 0.0,
                "distribution": {str(i): 0 for i in range(1, 6)}}
    overall_sum, delivery_sum = db.query(func.sum(Review.overall_rating), func.sum(Review.delivery_rating)).one()
    dist = {str(i): 0 for i in range(1, 6)}
    for rating, n in db.query(Review.overall_rating, func.count(Review.id)).group_by(Review.overall_rating):
        dist[str(rating)] = n
    return {
        "total_reviews": total,
        "avg_overall": float(round1(Decimal(int(overall_sum)) / total)),
        "avg_delivery": float(round1(Decimal(int(delivery_sum)) / total)),
        "distribution": dist,
    }


def review_payload(db: Session, r: Review) -> dict:
    lines = db.query(FoodRating).filter(FoodRating.review_id == r.id).order_by(FoodRating.food_name).all()
    return {
        "id": r.id,
        "order_id": r.order_id,
        "user_id": r.user_id,
        "food_ratings": [
            {"food_id": l.food_id, "name": l.food_name, "rating": l.rating, "comment": l.comment} for l in lines
        ],
        "delivery_rating": r.delivery_rating,
        "overall_rating": r.overall_rating,
        "comment": r.comment,
        "admin_response": r.admin_response,
        "created_at": as_utc(r.created_at).isoformat() if r.created_at else None,
    }
