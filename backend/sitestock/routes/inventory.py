# backend/sitestock/routes/inventory.py
"""
Inventory read routes: balances, movement history and average cost.

Average cost and value are null where the caller may not see costs.
"""
from flask import Blueprint, g, request

from .. import facade
from ..decorators import require_auth
from ..operations import envelope_response

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")
rpc_bp = Blueprint("rpc", __name__, url_prefix="/api/rpc")


@inventory_bp.get("")
@require_auth
def list_balances_route():
    """Balances with restock flags. Filters: store_id, product_id."""
    envelope = facade.list_balances(
        g.principal,
        store_id=request.args.get("store_id"),
        product_id=request.args.get("product_id"),
    )
    return envelope_response(envelope)


@inventory_bp.get("/<int:store_id>/<int:product_id>/movements")
@require_auth
def list_movements_route(store_id: int, product_id: int):
    return envelope_response(facade.list_movements(g.principal, store_id, product_id))


@inventory_bp.get("/<int:store_id>/<int:product_id>/average-cost")
@require_auth
def average_cost_route(store_id: int, product_id: int):
    return envelope_response(facade.get_average_cost(g.principal, store_id, product_id))


@rpc_bp.post("/get_average_cost")
@require_auth
def get_average_cost_rpc():
    """Remote-procedure form: body {"p_store_id", "p_product_id"}."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        payload = {}
    envelope = facade.get_average_cost(g.principal, payload.get("p_store_id"), payload.get("p_product_id"))
    return envelope_response(envelope)
