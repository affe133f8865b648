from pydantic import BaseModel, Field
from typing import Optional

# rating ranges are checked in services.ratings so they surface as 400s
class FoodRatingIn(BaseModel):
    food_id: str
    rating: int
    comment: Optional[str] = None

class ReviewIn(BaseModel):
    order_id: str
    food_ratings: list[FoodRatingIn] = []
    delivery_rating: int
    overall_rating: int
    comment: Optional[str] = Field(default=None, max_length=500)

class SingleFoodRatingIn(BaseModel):
    order_id: str
    food_id: str
    rating: int
    comment: Optional[str] = None

class AdminResponseIn(BaseModel):
    response: str = Field(min_length=1, max_length=300)
