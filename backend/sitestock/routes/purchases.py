# backend/sitestock/routes/purchases.py
"""
Purchase routes.

- POST records a purchase and raises the store balance
- PATCH corrects a purchase; balances move by the difference
- DELETE soft-deletes and reverses (admin-only, idempotent)
"""
from flask import Blueprint, g, request

from .. import facade
from ..decorators import require_auth
from ..operations import envelope_response

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    """Newest first. Filters: store_id, product_id, start_date, end_date (YYYY-MM-DD)."""
    envelope = facade.list_purchases(
        g.principal,
        store_id=request.args.get("store_id"),
        product_id=request.args.get("product_id"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return envelope_response(envelope)


@purchases_bp.post("")
@require_auth
def record_purchase_route():
    return envelope_response(facade.record_purchase(g.principal, request.get_json(silent=True)), 201)


@purchases_bp.patch("/<int:purchase_id>")
@require_auth
def update_purchase_route(purchase_id: int):
    return envelope_response(facade.update_purchase(g.principal, purchase_id, request.get_json(silent=True)))


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
def delete_purchase_route(purchase_id: int):
    return envelope_response(facade.delete_purchase(g.principal, purchase_id))
