# backend/sitestock/routes/reports.py
"""
Period reports.

GET /api/reports/<kind>?period=monthly&store_id=...
  kind: purchases | issues | inventory
  period: today | weekly | monthly | quarterly | annual | lifetime (default monthly)
"""
from flask import Blueprint, g, request

from .. import facade
from ..decorators import require_auth
from ..operations import envelope_response

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/<kind>")
@require_auth
def period_report_route(kind: str):
    envelope = facade.period_report(
        g.principal,
        kind,
        request.args.get("period", "monthly"),
        store_id=request.args.get("store_id"),
    )
    return envelope_response(envelope)
