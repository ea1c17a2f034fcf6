# backend/cafepos/routes/reports.py
"""
Reporting routes (read-only).

Time semantics:
- start/end accept ISO-8601 with Z/offsets; naive values are UTC.
- Both bounds are inclusive. Without them the current business day is used.
"""
from flask import Blueprint, current_app, request

from ..identity import identifier_json
from ..services import reporting_service
from ..time_utils import day_bounds_ms, ms_to_iso, now_ms, parse_iso_to_ms
from ..validation import ValidationError
from ..decorators import json_errors

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_from_args() -> tuple[int, int]:
    try:
        start = parse_iso_to_ms(request.args.get("start"))
        end = parse_iso_to_ms(request.args.get("end"))
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    if start is None or end is None:
        day_start, day_end, _ = day_bounds_ms(now_ms(), current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
        start = day_start if start is None else start
        end = day_end if end is None else end
    return start, end


@reports_bp.get("/sales")
@json_errors("build sales summary")
def sales_summary_route():
    start, end = _range_from_args()
    summary = reporting_service.sales_summary(start, end)
    summary["start"] = ms_to_iso(start)
    summary["end"] = ms_to_iso(end)
    return summary


@reports_bp.get("/low-stock")
@json_errors("build low-stock report")
def low_stock_route():
    threshold = request.args.get("threshold", type=float)
    rows = reporting_service.low_stock_report(threshold)
    for r in rows:
        r["product_id"] = identifier_json(r["product_id"])
    return {"products": rows}


@reports_bp.get("/customers/<customer_id>/credit")
@json_errors("build credit statement")
def credit_statement_route(customer_id: str):
    return reporting_service.customer_credit_statement(customer_id)
