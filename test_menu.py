# test_menu.py
from decimal import Decimal

from cloudkitchen.models.core import FoodDiscountType
from cloudkitchen.services.menu import effective_price


def test_discounted_price(make_food):
    assert effective_price(make_food(price=199, discount_type=FoodDiscountType.PERCENTAGE, discount_value=15)) == Decimal("169.00")
    assert effective_price(make_food(price=80, discount_type=FoodDiscountType.FLAT, discount_value=100)) == Decimal("0.00")
    assert effective_price(make_food(price="99.50")) == Decimal("99.50")


def test_catalog_admin(client, admin_headers, auth_headers):
    body = {"name": "Rasmalai", "price": 120, "category": "Dessert", "discount_type": "flat", "discount_value": 20}
    assert client.post("/menu/foods", json=body, headers=auth_headers).status_code == 403
    r = client.post("/menu/foods", json=body, headers=admin_headers)
    assert r.status_code == 200
    food = r.json()
    assert food["discounted_price"] == 100

    r = client.put(f"/menu/foods/{food['id']}", json={"available": False}, headers=admin_headers)
    assert r.json()["available"] is False
    assert client.get("/menu/foods", params={"available_only": True}).json() == []
    assert [f["name"] for f in client.get("/menu/foods", params={"category": "Dessert"}).json()] == ["Rasmalai"]
    assert client.get("/menu/foods/nope").status_code == 404
