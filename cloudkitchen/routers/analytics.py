from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import require_admin
from cloudkitchen.services import analytics

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/revenue")
def revenue(
    period: Literal["daily", "weekly", "monthly"] = "daily",
    days: int = Query(30, ge=1, le=366),
    db: Session = Depends(get_db),
    sub: str = Depends(require_admin),
):
    return analytics.revenue_series(db, period, days)


@router.get("/orders")
def order_stats(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return analytics.order_stats(db)


@router.get("/top-foods")
def top_foods(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db),
              sub: str = Depends(require_admin)):
    return analytics.top_foods(db, limit)


@router.get("/top-customers")
def top_customers(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db),
                  sub: str = Depends(require_admin)):
    return analytics.top_customers(db, limit)


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), sub: str = Depends(require_admin)):
    return analytics.dashboard(db)
