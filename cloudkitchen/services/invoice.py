"""Invoice numbering and PDF rendering.

The PDF shows the values stored on the order. Nothing is re-priced here; the only
write is the one-time invoice number (plus the GST backfill for legacy orders).
"""
import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy import update
from sqlalchemy.orm import Session

from cloudkitchen.config import settings
from cloudkitchen.models.core import Order
from cloudkitchen.services.billing import compute_gst, compute_subtotal
from cloudkitchen.services.orders import order_lines
from cloudkitchen.services.sequence import SequenceAllocator, with_sequence_retry
from cloudkitchen.util.clock import as_utc, to_local
from cloudkitchen.util.money import _money, to_decimal

logger = logging.getLogger(__name__)


def ensure_invoice_number(db: Session, order: Order) -> Order:
    """Assign INV-<year>-<seq> on first request; later calls return the stored number."""
    if order.invoice_number:
        return order
    year = to_local(as_utc(order.created_at)).year

    def work() -> Order:
        db.refresh(order)
        if order.invoice_number:
            return order
        number = SequenceAllocator(db).next_invoice_number(year)
        values = {"invoice_number": number}
        if not to_decimal(order.gst_amount):
            # legacy orders created before GST was stored
            subtotal = to_decimal(order.subtotal) or compute_subtotal(
                {"unit_price": l.unit_price, "quantity": l.quantity} for l in order_lines(db, order.id)
            )
            rate = order.gst_percentage or settings.GST_PERCENTAGE
            values.update(gst_amount=compute_gst(subtotal, rate), gst_percentage=rate)
        res = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.invoice_number.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(order)
        if res.rowcount:
            logger.info("invoice %s assigned to %s", number, order.order_number)
        return order

    return with_sequence_retry(db, work)


def invoice_payload(db: Session, order: Order) -> dict:
    created = to_local(as_utc(order.created_at))
    lines = [
        {
            "name": l.name,
            "quantity": l.quantity,
            "unit_price": _money(l.unit_price),
            "line_total": _money(to_decimal(l.unit_price) * l.quantity),
        }
        for l in order_lines(db, order.id)
    ]
    return {
        "company": {
            "name": settings.COMPANY_NAME,
            "tagline": settings.COMPANY_TAGLINE,
            "address": settings.COMPANY_ADDRESS,
            "phone": settings.COMPANY_PHONE,
            "gstin": settings.COMPANY_GSTIN,
        },
        "invoice_number": order.invoice_number,
        "order_number": order.order_number,
        "date": created.strftime("%d %b %Y"),
        "bill_to": {
            "name": order.customer_name,
            "phone": order.customer_phone,
            "email": order.customer_email,
            "address": order.full_address or ", ".join(
                p for p in (order.address_line1, order.address_line2, order.city, order.state, order.pincode) if p
            ),
        },
        "lines": lines,
        "subtotal": _money(order.subtotal),
        "gst_percentage": float(order.gst_percentage or 0),
        "gst_amount": _money(order.gst_amount),
        "delivery_fee": _money(order.delivery_fee),
        "discount": _money(order.discount),
        "coupon_code": order.coupon_code,
        "total_amount": _money(order.total_amount),
        "payment_method": order.payment_method.value,
        "is_paid": bool(order.is_paid),
    }


def _amt(x: float) -> str:
    return f"{settings.CURRENCY_SYMBOL} {x:,.2f}"


def render_invoice_pdf(payload: dict) -> bytes:
    output = io.BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"Invoice {payload['invoice_number']}",
        invariant=1,
    )
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="Brand", parent=styles["Title"], alignment=TA_CENTER, fontSize=20, spaceAfter=2))
    styles.add(ParagraphStyle(name="Center", parent=styles["Normal"], alignment=TA_CENTER, fontSize=9))

    company = payload["company"]
    story = [
        Paragraph(escape(company["name"]), styles["Brand"]),
        Paragraph(escape(company["tagline"]), styles["Center"]),
        Paragraph(escape(f"{company['address']} | {company['phone']} | GSTIN: {company['gstin']}"), styles["Center"]),
        Spacer(1, 6 * mm),
        Paragraph("TAX INVOICE", styles["Heading2"]),
    ]

    meta = Table(
        [
            ["Invoice No:", payload["invoice_number"], "Order No:", payload["order_number"]],
            ["Date:", payload["date"], "Payment:", payload["payment_method"]],
        ],
        colWidths=[25 * mm, 55 * mm, 25 * mm, 55 * mm],
    )
    meta.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
    ]))
    story += [meta, Spacer(1, 5 * mm)]

    bill = payload["bill_to"]
    story.append(Paragraph("Bill To", styles["Heading4"]))
    for part in (bill["name"], bill["phone"], bill.get("email"), bill["address"]):
        if part:
            story.append(Paragraph(escape(part), styles["Normal"]))
    story.append(Spacer(1, 5 * mm))

    rows = [["#", "Item", "Qty", "Rate", "Amount"]]
    for i, l in enumerate(payload["lines"], start=1):
        rows.append([str(i), l["name"], str(l["quantity"]), _amt(l["unit_price"]), _amt(l["line_total"])])
    items = Table(rows, colWidths=[10 * mm, 80 * mm, 15 * mm, 30 * mm, 30 * mm], repeatRows=1)
    items.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
    ]))
    story += [items, Spacer(1, 4 * mm)]

    totals = [
        ["Subtotal", _amt(payload["subtotal"])],
        [f"GST ({payload['gst_percentage']:g}%)", _amt(payload["gst_amount"])],
        ["Delivery", _amt(payload["delivery_fee"]) if payload["delivery_fee"] > 0 else "FREE"],
    ]
    if payload["discount"] > 0:
        label = f"Discount ({payload['coupon_code']})" if payload["coupon_code"] else "Discount"
        totals.append([label, f"- {_amt(payload['discount'])}"])
    totals.append(["Grand Total", _amt(payload["total_amount"])])
    summary = Table(totals, colWidths=[40 * mm, 35 * mm], hAlign="RIGHT")
    summary.setStyle(TableStyle([
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
    ]))
    story += [summary, Spacer(1, 6 * mm)]

    story.append(Paragraph(
        f"Payment status: <b>{'PAID' if payload['is_paid'] else 'PENDING'}</b> ({payload['payment_method']})",
        styles["Normal"],
    ))
    story += [
        Spacer(1, 10 * mm),
        Paragraph(escape(f"Thank you for ordering with {company['name']}!"), styles["Center"]),
        Paragraph("This is a computer generated invoice.", styles["Center"]),
    ]

    try:
        doc.build(story)
        return output.getvalue()
    finally:
        output.close()


def invoice_filename(invoice_number: str) -> str:
    return f"Invoice-{invoice_number}.pdf"
