from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import require_admin
from cloudkitchen.models.core import Food, FoodDiscountType
from cloudkitchen.schemas.menu import FoodIn, FoodUpdate
from cloudkitchen.services.menu import food_payload, get_food

router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("/foods")
def list_foods(category: str | None = None, available_only: bool = False, db: Session = Depends(get_db)):
    q = db.query(Food)
    if category:
        q = q.filter(Food.category == category)
    if available_only:
        q = q.filter(Food.available.is_(True))
    return [food_payload(f) for f in q.order_by(Food.name).all()]


@router.get("/foods/{food_id}")
def get_one(food_id: str, db: Session = Depends(get_db)):
    return food_payload(get_food(db, food_id))


@router.post("/foods")
def create_food(body: FoodIn, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    data = body.model_dump()
    data["discount_type"] = FoodDiscountType(data["discount_type"])
    f = Food(**data, avg_rating=0, rating_count=0)
    db.add(f)
    db.commit()
    return food_payload(f)


@router.put("/foods/{food_id}")
def update_food(food_id: str, body: FoodUpdate, db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    f = get_food(db, food_id)
    for k, v in body.model_dump(exclude_unset=True).items():
        if k == "discount_type" and v is not None:
            v = FoodDiscountType(v)
        setattr(f, k, v)
    db.commit()
    return food_payload(f)
