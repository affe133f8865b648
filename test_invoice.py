# test_invoice.py
from datetime import datetime, timezone
from decimal import Decimal

from cloudkitchen.models.core import Order, OrderItem, OrderStatus, PayMethod
from cloudkitchen.services.invoice import ensure_invoice_number, invoice_payload, render_invoice_pdf


def _legacy_order(db, number="ORD-2024-000010", created=datetime(2024, 12, 31, 20, 0, tzinfo=timezone.utc)):
    """An order stored before GST was persisted."""
    o = Order(order_number=number, user_id="user-1", customer_name="Kiran", customer_phone="9000000002",
              subtotal=Decimal("400.00"), delivery_fee=Decimal("0.00"), discount=Decimal("0.00"),
              gst_amount=Decimal("0.00"), total_amount=Decimal("400.00"), status=OrderStatus.DELIVERED,
              payment_method=PayMethod.UPI, is_paid=True, created_at=created)
    db.add(o)
    db.flush()
    db.add(OrderItem(order_id=o.id, position=1, name="Pav Bhaji & Extra Butter", quantity=4, unit_price=Decimal("100.00")))
    db.commit()
    return o


def test_invoice_number_assigned_once_with_gst_backfill(db):
    o = _legacy_order(db)
    assert o.invoice_number is None

    ensure_invoice_number(db, o)
    assert o.invoice_number == "INV-2024-000001"
    assert o.gst_amount == Decimal("20.00")
    assert o.gst_percentage == Decimal("5.00")

    again = ensure_invoice_number(db, o)
    assert again.invoice_number == "INV-2024-000001"


def test_invoice_year_follows_order_creation(db):
    a = _legacy_order(db, "ORD-2024-000011")
    b = _legacy_order(db, "ORD-2025-000001", created=datetime(2025, 1, 2, 9, 0, tzinfo=timezone.utc))
    ensure_invoice_number(db, a)
    ensure_invoice_number(db, b)
    assert a.invoice_number == "INV-2024-000001"
    assert b.invoice_number == "INV-2025-000001"


def test_pdf_renders_stored_values(db):
    o = _legacy_order(db)
    ensure_invoice_number(db, o)
    payload = invoice_payload(db, o)
    assert payload["lines"] == [{"name": "Pav Bhaji & Extra Butter", "quantity": 4, "unit_price": 100.0, "line_total": 400.0}]
    assert payload["total_amount"] == 400.0
    pdf = render_invoice_pdf(payload)
    assert pdf.startswith(b"%PDF")
    # invariant mode gives byte-identical output for the same input
    assert render_invoice_pdf(payload) == pdf


def test_invoice_endpoint(client, auth_headers, other_headers, checkout_body):
    body = checkout_body([{"name": "Chole Bhature", "quantity": 2, "unit_price": 160}], payment_method="Card")
    order = client.post("/payments/process", json=body, headers=auth_headers).json()["order"]
    assert order["invoice_number"] is None

    r = client.get(f"/reports/invoice/{order['id']}", headers=auth_headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    year = order["order_number"].split("-")[1]
    assert r.headers["content-disposition"] == f"attachment; filename=Invoice-INV-{year}-000001.pdf"
    assert r.content.startswith(b"%PDF")

    # second download reuses the number
    r = client.get(f"/reports/invoice/{order['id']}", headers=auth_headers)
    assert r.headers["content-disposition"].endswith(f"INV-{year}-000001.pdf")

    assert client.get(f"/reports/invoice/{order['id']}", headers=other_headers).status_code == 403
    assert client.get("/reports/invoice/missing", headers=auth_headers).status_code == 404
