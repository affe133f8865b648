from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from cloudkitchen.db import get_db
from cloudkitchen.deps import is_admin, require_admin, require_claims
from cloudkitchen.services import invoice
from cloudkitchen.services.orders import get_order, order_summary
from cloudkitchen.services.reports import month_bounds, monthly_report, orders_in_month
from cloudkitchen.util.clock import now_utc, to_local

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/invoice/{order_id}")
def download_invoice(order_id: str, db: Session = Depends(get_db), claims: dict = Depends(require_claims)):
    o = get_order(db, order_id)
    if o.user_id != claims["sub"] and not is_admin(claims):
        raise HTTPException(status_code=403, detail="Not your order")
    o = invoice.ensure_invoice_number(db, o)
    pdf = invoice.render_invoice_pdf(invoice.invoice_payload(db, o))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={invoice.invoice_filename(o.invoice_number)}"},
    )


@router.get("/monthly")
def monthly(month: int | None = None, year: int | None = None, db: Session = Depends(get_db),
            sub: str = Depends(require_admin)):
    today = to_local(now_utc())
    if month is None:
        month = today.month
    if year is None:
        year = today.year
    start, end = month_bounds(year, month)
    found = orders_in_month(db, year, month)
    return {
        "month": month,
        "year": year,
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "summary": monthly_report(found),
        "orders": [order_summary(o) | {"gst_amount": float(o.gst_amount or 0)} for o in found],
    }
