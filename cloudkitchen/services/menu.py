from decimal import Decimal

from sqlalchemy.orm import Session

from cloudkitchen.errors import NotFoundError
from cloudkitchen.models.core import Food, FoodDiscountType
from cloudkitchen.util.money import _money, q2, to_decimal, whole


def effective_price(food: Food) -> Decimal:
    price = to_decimal(food.price)
    value = to_decimal(food.discount_value)
    if food.discount_type == FoodDiscountType.PERCENTAGE:
        price = whole(price - price * value / Decimal(100))
    elif food.discount_type == FoodDiscountType.FLAT:
        price = price - value
    return max(q2(price), Decimal("0.00"))


def get_food(db: Session, food_id: str) -> Food:
    f = db.get(Food, food_id)
    if not f:
        raise NotFoundError("Food not found")
    return f


def food_payload(f: Food) -> dict:
    return {
        "id": f.id,
        "name": f.name,
        "description": f.description,
        "price": _money(f.price),
        "discounted_price": _money(effective_price(f)),
        "discount_type": f.discount_type.value,
        "discount_value": _money(f.discount_value),
        "image": f.image,
        "category": f.category,
        "is_veg": bool(f.is_veg),
        "available": bool(f.available),
        "avg_rating": float(f.avg_rating or 0),
        "rating_count": f.rating_count or 0,
    }
