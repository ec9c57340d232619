# backend/sitestock/routes/stores.py
"""
Project and store registry routes.

SECURITY: All routes require an authenticated principal.
- Listing is scoped to the stores the caller can read
- Create/update/delete are admin-only (MANAGE_REGISTRY)
"""
from flask import Blueprint, g, request

from .. import facade
from ..decorators import require_auth
from ..operations import envelope_response

stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")
projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@projects_bp.get("")
@require_auth
def list_projects_route():
    return envelope_response(facade.list_projects(g.principal))


@projects_bp.post("")
@require_auth
def create_project_route():
    """Create a project; its project store is created with it."""
    payload = request.get_json(silent=True)
    return envelope_response(facade.create_project(g.principal, payload), 201)


@projects_bp.patch("/<int:project_id>")
@require_auth
def update_project_route(project_id: int):
    payload = request.get_json(silent=True)
    return envelope_response(facade.update_project(g.principal, project_id, payload))


@projects_bp.delete("/<int:project_id>")
@require_auth
def delete_project_route(project_id: int):
    return envelope_response(facade.delete_project(g.principal, project_id))


@stores_bp.get("")
@require_auth
def list_stores_route():
    """List active stores. Optional ?type=central|project."""
    return envelope_response(facade.list_stores(g.principal, store_type=request.args.get("type")))


@stores_bp.get("/issueable")
@require_auth
def issueable_stores_route():
    return envelope_response(facade.issueable_stores(g.principal))


@stores_bp.get("/<int:store_id>")
@require_auth
def get_store_route(store_id: int):
    return envelope_response(facade.get_store(g.principal, store_id))


@stores_bp.post("")
@require_auth
def create_store_route():
    payload = request.get_json(silent=True)
    return envelope_response(facade.create_store(g.principal, payload), 201)


@stores_bp.patch("/<int:store_id>")
@require_auth
def update_store_route(store_id: int):
    payload = request.get_json(silent=True)
    return envelope_response(facade.update_store(g.principal, store_id, payload))


@stores_bp.delete("/<int:store_id>")
@require_auth
def delete_store_route(store_id: int):
    """Soft-delete a store. 409 while it still holds stock."""
    return envelope_response(facade.delete_store(g.principal, store_id))
