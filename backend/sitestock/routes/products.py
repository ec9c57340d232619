# backend/sitestock/routes/products.py
"""
Category and product catalog routes.

Reads are open to every role; changes are admin-only.
"""
from flask import Blueprint, g, request

from .. import facade
from ..decorators import require_auth
from ..operations import envelope_response

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    return envelope_response(facade.list_categories(g.principal))


@categories_bp.post("")
@require_auth
def create_category_route():
    return envelope_response(facade.create_category(g.principal, request.get_json(silent=True)), 201)


@categories_bp.patch("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    return envelope_response(facade.update_category(g.principal, category_id, request.get_json(silent=True)))


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    return envelope_response(facade.delete_category(g.principal, category_id))


@products_bp.get("")
@require_auth
def list_products_route():
    """List active products. Optional ?category_id=."""
    return envelope_response(facade.list_products(g.principal, category_id=request.args.get("category_id")))


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return envelope_response(facade.get_product(g.principal, product_id))


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a product.

    A soft-deleted product with the same name in the same category is
    reinstated instead of inserting a duplicate.
    """
    return envelope_response(facade.create_product(g.principal, request.get_json(silent=True)), 201)


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    return envelope_response(facade.update_product(g.principal, product_id, request.get_json(silent=True)))


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    return envelope_response(facade.delete_product(g.principal, product_id))


@products_bp.post("/import")
@require_auth
def import_products_route():
    """
    Bulk-create products from parsed rows.

    Body: {"rows": [{"name", "category", "unit", "description"?, "restock_level"?}, ...]}
    """
    payload = request.get_json(silent=True) or {}
    rows = payload.get("rows") if isinstance(payload, dict) else None
    return envelope_response(facade.import_products(g.principal, rows))
