# test_ratings.py
from decimal import Decimal

import pytest

from cloudkitchen.errors import ConflictError, ValidationError
from cloudkitchen.models.core import Food, FoodRating, PayMethod
from cloudkitchen.services import orders as lifecycle
from cloudkitchen.services import ratings
from cloudkitchen.services.billing import assemble


def _delivered_order(db, foods, user_id="user-1", deliver=True):
    lines = [{"food_id": f.id, "name": f.name, "quantity": 1, "unit_price": f.price} for f in foods]
    o = lifecycle.create_order(db, user_id=user_id, customer={"name": "N", "phone": "1"}, address={},
                               lines=lines, pricing=assemble(lines), payment_method=PayMethod.UPI)
    if deliver:
        for s in ("Confirmed", "Preparing", "Out for Delivery", "Delivered"):
            lifecycle.advance_status(db, o, s, "admin-1")
    return o


def test_incremental_update():
    assert ratings.incremental_update(Decimal("4.0"), 2, 5) == {"avg_rating": Decimal("4.3"), "rating_count": 3}
    assert ratings.incremental_update(0, 0, 3) == {"avg_rating": Decimal("3.0"), "rating_count": 1}


def test_round_half_up():
    assert ratings.round1(Decimal("4.25")) == Decimal("4.3")


def test_review_recomputes_food_average(db, make_food):
    pizza, soup = make_food(name="Pizza", price=250), make_food(name="Soup", price=90)
    first = _delivered_order(db, [pizza, soup])
    ratings.submit_review(db, first, "user-1", [{"food_id": pizza.id, "rating": 5}, {"food_id": soup.id, "rating": 2}], 4, 4)
    second = _delivered_order(db, [pizza])
    ratings.submit_review(db, second, "user-1", [{"food_id": pizza.id, "rating": 4}], 5, 5, "great")

    db.expire_all()
    p = db.get(Food, pizza.id)
    assert (p.avg_rating, p.rating_count) == (Decimal("4.5"), 2)
    s = db.get(Food, soup.id)
    assert (s.avg_rating, s.rating_count) == (Decimal("2.0"), 1)
    assert db.get(type(first), first.id).has_review is True


def test_one_review_per_order(db, make_food):
    f = make_food()
    o = _delivered_order(db, [f])
    ratings.submit_review(db, o, "user-1", [{"food_id": f.id, "rating": 3}], 3, 3)
    with pytest.raises(ConflictError):
        ratings.submit_review(db, o, "user-1", [{"food_id": f.id, "rating": 5}], 5, 5)
    db.expire_all()
    assert db.get(Food, f.id).rating_count == 1


@pytest.mark.parametrize("delivery,overall,food", [(0, 3, 3), (3, 6, 3), (3, 3, 9)])
def test_ratings_must_be_one_to_five(db, make_food, delivery, overall, food):
    f = make_food()
    o = _delivered_order(db, [f])
    with pytest.raises(ValidationError):
        ratings.submit_review(db, o, "user-1", [{"food_id": f.id, "rating": food}], delivery, overall)
    assert lifecycle.get_order(db, o.id).has_review is False


def test_only_delivered_orders(db, make_food):
    f = make_food()
    o = _delivered_order(db, [f], deliver=False)
    with pytest.raises(ValidationError):
        ratings.submit_review(db, o, "user-1", [{"food_id": f.id, "rating": 4}], 4, 4)
    with pytest.raises(ValidationError):
        ratings.rate_food(db, o, "user-1", f.id, 4)


def test_standalone_rating_then_review_reconciles(db, make_food):
    f = make_food()
    o1 = _delivered_order(db, [f])
    o2 = _delivered_order(db, [f])

    agg = ratings.rate_food(db, o1, "user-1", f.id, 5)
    assert agg == {"avg_rating": Decimal("5.0"), "rating_count": 1}
    assert db.query(FoodRating).filter(FoodRating.review_id.is_(None)).count() == 1

    # review on the other order triggers a full recompute that includes the standalone row
    ratings.submit_review(db, o2, "user-1", [{"food_id": f.id, "rating": 2}], 4, 4)
    db.expire_all()
    food = db.get(Food, f.id)
    assert (food.avg_rating, food.rating_count) == (Decimal("3.5"), 2)

    # a later review on the first order adopts the standalone row instead of duplicating it
    ratings.submit_review(db, o1, "user-1", [{"food_id": f.id, "rating": 4}], 4, 4)
    db.expire_all()
    assert db.query(FoodRating).filter(FoodRating.food_id == f.id).count() == 2
    assert db.query(FoodRating).filter(FoodRating.review_id.is_(None)).count() == 0
    assert db.get(Food, f.id).avg_rating == Decimal("3.0")


def test_recompute_all_repairs_drift(db, make_food):
    f = make_food()
    o = _delivered_order(db, [f])
    ratings.submit_review(db, o, "user-1", [{"food_id": f.id, "rating": 4}], 4, 4)
    food = db.get(Food, f.id)
    food.avg_rating, food.rating_count = Decimal("1.0"), 9
    db.commit()
    ratings.recompute_all(db)
    db.expire_all()
    food = db.get(Food, f.id)
    assert (food.avg_rating, food.rating_count) == (Decimal("4.0"), 1)


def test_review_endpoints(client, db, auth_headers, other_headers, admin_headers, events, make_food):
    f = make_food(name="Momos", price=120)
    o = _delivered_order(db, [f])
    body = {"order_id": o.id, "food_ratings": [{"food_id": f.id, "rating": 5, "comment": "juicy"}],
            "delivery_rating": 4, "overall_rating": 5, "comment": "loved it"}

    assert client.post("/reviews/", json=body, headers=other_headers).status_code == 403
    r = client.post("/reviews/", json=body, headers=auth_headers)
    assert r.status_code == 200, r.text
    review = r.json()
    assert review["food_ratings"] == [{"food_id": f.id, "name": "Momos", "rating": 5, "comment": "juicy"}]
    assert client.post("/reviews/", json=body, headers=auth_headers).status_code == 409
    assert [e["event"] for e in events.events] == ["rating-submitted"]

    assert client.get(f"/reviews/order/{o.id}", headers=auth_headers).json()["id"] == review["id"]

    r = client.put(f"/reviews/admin/{review['id']}/response", json={"response": "Thank you!"}, headers=admin_headers)
    assert r.json()["admin_response"] == "Thank you!"

    dishes = client.get("/reviews/admin/dish-ratings", headers=admin_headers).json()
    assert dishes["best"][0] == {"food_id": f.id, "name": "Momos", "avg_rating": 5.0, "rating_count": 1}

    stats = client.get("/reviews/admin/stats", headers=admin_headers).json()
    assert stats["total_reviews"] == 1
    assert stats["distribution"]["5"] == 1

    assert len(client.get("/reviews/admin/all", params={"rating": 5}, headers=admin_headers).json()) == 1
    assert client.get("/reviews/admin/all", params={"rating": 1}, headers=admin_headers).json() == []
    assert client.post("/reviews/admin/recompute", headers=admin_headers).json() == {"recomputed": 1}

    food = client.get(f"/menu/foods/{f.id}").json()
    assert food["avg_rating"] == 5.0
    assert food["rating_count"] == 1
