# backend/sitestock/routes/issues.py
"""
Issue routes.

Central stores issue to project stores; project stores return to a central
store or issue to a named individual. 409 InsufficientStockError carries the
available quantity.
"""
from flask import Blueprint, g, request

from .. import facade
from ..decorators import require_auth
from ..operations import envelope_response

issues_bp = Blueprint("issues", __name__, url_prefix="/api/issues")


@issues_bp.get("")
@require_auth
def list_issues_route():
    envelope = facade.list_issues(
        g.principal,
        store_id=request.args.get("store_id"),
        product_id=request.args.get("product_id"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return envelope_response(envelope)


@issues_bp.post("")
@require_auth
def record_issue_route():
    return envelope_response(facade.record_issue(g.principal, request.get_json(silent=True)), 201)


@issues_bp.delete("/<int:issue_id>")
@require_auth
def delete_issue_route(issue_id: int):
    return envelope_response(facade.delete_issue(g.principal, issue_id))
