# conftest.py
import os
import tempfile
from datetime import datetime, timedelta, timezone

_tmp = tempfile.mkdtemp(prefix="cloudkitchen-tests-")
os.environ["APP_SECRET"] = "test-secret"
os.environ["DB_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["TZ"] = "UTC"

import pytest
from fastapi.testclient import TestClient

from cloudkitchen.db import Base, SessionLocal, engine
from cloudkitchen.main import app
from cloudkitchen.models.core import Coupon, DiscountType, Food, FoodDiscountType
from cloudkitchen.services.events import MemorySink, bus
from cloudkitchen.util.security import create_token

USER_ID = "user-1"
ADMIN_ID = "admin-1"


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_token(USER_ID)}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {create_token('user-2')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_token(ADMIN_ID, role='admin')}"}


@pytest.fixture
def events():
    sink = bus.subscribe(MemorySink())
    yield sink
    bus.unsubscribe(sink)


@pytest.fixture
def make_food(db):
    def _make(name="Paneer Tikka", price=100, **kw):
        f = Food(name=name, price=price, discount_type=kw.pop("discount_type", FoodDiscountType.NONE),
                 discount_value=kw.pop("discount_value", 0), avg_rating=0, rating_count=0, **kw)
        db.add(f)
        db.commit()
        return f
    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE20", discount_type=DiscountType.PERCENTAGE, discount_value=20, **kw):
        now = datetime.now(timezone.utc)
        c = Coupon(
            code=code,
            description=kw.pop("description", ""),
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_value=kw.pop("min_order_value", 0),
            max_discount=kw.pop("max_discount", None),
            valid_from=kw.pop("valid_from", now - timedelta(days=1)),
            valid_to=kw.pop("valid_to", now + timedelta(days=30)),
            usage_limit=kw.pop("usage_limit", None),
            used_count=kw.pop("used_count", 0),
            is_active=kw.pop("is_active", True),
        )
        db.add(c)
        db.commit()
        return c
    return _make


@pytest.fixture
def checkout_body():
    def _body(items, payment_method="COD", **kw):
        return {
            "customer": {"name": "Asha", "phone": "9876500000", "email": "asha@example.com"},
            "address": {"address_line1": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"},
            "items": items,
            "payment_method": payment_method,
            **kw,
        }
    return _body
