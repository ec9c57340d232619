# Overview: Principal-aware query/report and mutation operations returning result envelopes.

"""
Every public function here:

1) checks the caller with permissions.authorize (store-scoped where a store is involved)
2) dispatches to the registry/ledger/reporting services
3) returns an envelope via the operation boundary: {"data", "error"} (+ "summary")

Average cost and stock value are only shown where permissions.can_view_costs
allows; elsewhere they are returned as null.
"""
from __future__ import annotations

from datetime import date

from .errors import Unauthorized, ValidationError
from .models import Store
from .operations import WithSummary, operation
from .permissions import (
    ADMIN,
    CENTRAL_STORE_MANAGER,
    PROJECT_STORE_MANAGER,
    Principal,
    authorize,
    can_manage_store,
    can_view_costs,
)
from .services import (
    catalog_service,
    costing_service,
    inventory_service,
    reporting_service,
    store_service,
)
from .services.reporting_service import serialize_amounts
from .time_utils import parse_business_date


# -- argument helpers --

def _int_arg(value, field: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def _optional_int(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    return _int_arg(value, field)


def _payload(payload) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _date_arg(value, field: str) -> date | None:
    try:
        return parse_business_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


def _user(principal: Principal | None) -> str | None:
    return principal.user_id if principal is not None else None


# -- scoping --

def readable_store_ids(principal: Principal) -> list[int] | None:
    """None means every store."""
    if principal.role in (ADMIN, CENTRAL_STORE_MANAGER):
        return None
    q = Store.query.filter(Store.deleted_at.is_(None))
    ids = [s.id for s in q.filter(Store.type == "central").all()]
    if principal.project_id is not None:
        ids.extend(s.id for s in q.filter(Store.project_id == principal.project_id).all())
    return ids


def report_store_ids(principal: Principal) -> list[int] | None:
    """Default scope of purchase/issue listings and reports: a project manager sees its own store."""
    if principal.role in (ADMIN, CENTRAL_STORE_MANAGER):
        return None
    if principal.project_id is None:
        return []
    return [
        s.id
        for s in Store.query.filter(Store.project_id == principal.project_id, Store.deleted_at.is_(None)).all()
    ]


def _readable_store(principal: Principal, store_id, permission_code: str = "VIEW_INVENTORY") -> Store:
    authorize(principal, permission_code)
    store = store_service.get_store(_int_arg(store_id, "store_id"))
    authorize(principal, permission_code, store)
    return store


def _redact_costs(principal: Principal, rows: list[dict]) -> list[dict]:
    stores: dict[int, Store] = {}
    for row in rows:
        store = stores.get(row["store_id"])
        if store is None:
            store = stores[row["store_id"]] = store_service.get_store(row["store_id"])
        if not can_view_costs(principal, store):
            row["average_cost"] = None
            row["total_value"] = None
    return rows


# -- Projects & stores --

@operation
def list_projects(principal: Principal):
    authorize(principal, "VIEW_INVENTORY")
    return [p.to_dict() for p in store_service.list_projects()]


@operation
def create_project(principal: Principal, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    payload = _payload(payload)
    project = store_service.create_project(
        payload.get("name"),
        description=payload.get("description"),
        location=payload.get("location"),
        status=payload.get("status") or "active",
        actor_id=_user(principal),
    )
    return {"project": project.to_dict(), "store": store_service.get_project_store(project.id).to_dict()}


@operation
def update_project(principal: Principal, project_id, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    payload = _payload(payload)
    project = store_service.update_project(
        _int_arg(project_id, "project_id"),
        name=payload.get("name"),
        description=payload.get("description"),
        location=payload.get("location"),
        status=payload.get("status"),
        actor_id=_user(principal),
    )
    return project.to_dict()


@operation
def delete_project(principal: Principal, project_id):
    authorize(principal, "MANAGE_REGISTRY")
    return store_service.soft_delete_project(_int_arg(project_id, "project_id"), actor_id=_user(principal)).to_dict()


@operation
def list_stores(principal: Principal, store_type: str | None = None):
    authorize(principal, "VIEW_INVENTORY")
    scope = readable_store_ids(principal)
    stores = store_service.list_stores(store_type=store_type or None)
    return [s.to_dict() for s in stores if scope is None or s.id in scope]


@operation
def get_store(principal: Principal, store_id):
    return _readable_store(principal, store_id).to_dict()


@operation
def create_store(principal: Principal, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    payload = _payload(payload)
    store = store_service.create_store(
        payload.get("name"),
        payload.get("type"),
        project_id=_optional_int(payload.get("project_id"), "project_id"),
        actor_id=_user(principal),
    )
    return store.to_dict()


@operation
def update_store(principal: Principal, store_id, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    payload = _payload(payload)
    store = store_service.update_store(_int_arg(store_id, "store_id"), name=payload.get("name"), actor_id=_user(principal))
    return store.to_dict()


@operation
def delete_store(principal: Principal, store_id):
    authorize(principal, "MANAGE_REGISTRY")
    return store_service.soft_delete_store(_int_arg(store_id, "store_id"), actor_id=_user(principal)).to_dict()


# -- Categories & products --

@operation
def list_categories(principal: Principal):
    authorize(principal, "VIEW_INVENTORY")
    return [c.to_dict() for c in catalog_service.list_categories()]


@operation
def create_category(principal: Principal, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    return catalog_service.create_category(_payload(payload), actor_id=_user(principal)).to_dict()


@operation
def update_category(principal: Principal, category_id, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    category = catalog_service.update_category(
        _int_arg(category_id, "category_id"), _payload(payload), actor_id=_user(principal)
    )
    return category.to_dict()


@operation
def delete_category(principal: Principal, category_id):
    authorize(principal, "MANAGE_REGISTRY")
    return catalog_service.soft_delete_category(_int_arg(category_id, "category_id"), actor_id=_user(principal)).to_dict()


@operation
def list_products(principal: Principal, category_id=None):
    authorize(principal, "VIEW_INVENTORY")
    products = catalog_service.list_products(category_id=_optional_int(category_id, "category_id"))
    return [p.to_dict() for p in products]


@operation
def get_product(principal: Principal, product_id):
    authorize(principal, "VIEW_INVENTORY")
    return catalog_service.get_product(_int_arg(product_id, "product_id")).to_dict()


@operation
def create_product(principal: Principal, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    return catalog_service.create_product(_payload(payload), actor_id=_user(principal)).to_dict()


@operation
def update_product(principal: Principal, product_id, payload: dict):
    authorize(principal, "MANAGE_REGISTRY")
    product = catalog_service.update_product(
        _int_arg(product_id, "product_id"), _payload(payload), actor_id=_user(principal)
    )
    return product.to_dict()


@operation
def delete_product(principal: Principal, product_id):
    authorize(principal, "MANAGE_REGISTRY")
    return catalog_service.soft_delete_product(_int_arg(product_id, "product_id"), actor_id=_user(principal)).to_dict()


@operation
def import_products(principal: Principal, rows):
    authorize(principal, "MANAGE_REGISTRY")
    return catalog_service.import_products(rows, actor_id=_user(principal))


# -- Ledger --

@operation
def record_purchase(principal: Principal, payload: dict):
    authorize(principal, "RECORD_PURCHASE")
    payload = _payload(payload)
    store = store_service.get_store(_int_arg(payload.get("store_id"), "store_id"))
    authorize(principal, "RECORD_PURCHASE", store)
    return inventory_service.record_purchase(payload, created_by=_user(principal)).to_dict()


@operation
def update_purchase(principal: Principal, purchase_id, payload: dict):
    authorize(principal, "EDIT_PURCHASE")
    payload = _payload(payload)
    purchase = inventory_service.get_purchase(_int_arg(purchase_id, "purchase_id"))
    authorize(principal, "EDIT_PURCHASE", purchase.store)
    if payload.get("store_id") is not None:
        target = store_service.get_store(_int_arg(payload["store_id"], "store_id"))
        authorize(principal, "EDIT_PURCHASE", target)
    return inventory_service.update_purchase(purchase.id, payload, actor_id=_user(principal)).to_dict()


@operation
def delete_purchase(principal: Principal, purchase_id):
    authorize(principal, "DELETE_PURCHASE")
    purchase = inventory_service.delete_purchase(_int_arg(purchase_id, "purchase_id"), deleted_by=_user(principal))
    return purchase.to_dict()


@operation
def record_issue(principal: Principal, payload: dict):
    authorize(principal, "RECORD_ISSUE")
    payload = _payload(payload)
    store = store_service.get_store(_int_arg(payload.get("from_store_id"), "from_store_id"))
    authorize(principal, "RECORD_ISSUE", store)
    return inventory_service.record_issue(payload, created_by=_user(principal)).to_dict()


@operation
def delete_issue(principal: Principal, issue_id):
    authorize(principal, "DELETE_ISSUE")
    return inventory_service.delete_issue(_int_arg(issue_id, "issue_id"), deleted_by=_user(principal)).to_dict()


# -- Queries --

@operation
def get_average_cost(principal: Principal, store_id, product_id):
    store = _readable_store(principal, store_id)
    if not can_view_costs(principal, store):
        raise Unauthorized("Cost information is restricted for this store")
    product = catalog_service.get_product(_int_arg(product_id, "product_id"), include_deleted=True)
    return serialize_amounts(costing_service.average_cost(store.id, product.id))


@operation
def list_balances(principal: Principal, store_id=None, product_id=None):
    authorize(principal, "VIEW_INVENTORY")
    if store_id not in (None, ""):
        store_id = _readable_store(principal, store_id).id
    else:
        store_id = None
    rows = reporting_service.list_balances(
        store_ids=readable_store_ids(principal),
        store_id=store_id,
        product_id=_optional_int(product_id, "product_id"),
    )
    return serialize_amounts(_redact_costs(principal, rows))


@operation
def list_movements(principal: Principal, store_id, product_id):
    store = _readable_store(principal, store_id)
    product = catalog_service.get_product(_int_arg(product_id, "product_id"), include_deleted=True)
    return serialize_amounts(reporting_service.list_movements(store.id, product.id))


def _listing_args(principal: Principal, store_id, product_id, start_date, end_date) -> dict:
    if store_id not in (None, ""):
        store_id = _readable_store(principal, store_id).id
        scope = None
    else:
        store_id = None
        scope = report_store_ids(principal)
    return {
        "store_ids": scope,
        "store_id": store_id,
        "product_id": _optional_int(product_id, "product_id"),
        "start_date": _date_arg(start_date, "start_date"),
        "end_date": _date_arg(end_date, "end_date"),
    }


@operation
def list_purchases(principal: Principal, store_id=None, product_id=None, start_date=None, end_date=None):
    authorize(principal, "VIEW_INVENTORY")
    args = _listing_args(principal, store_id, product_id, start_date, end_date)
    return [p.to_dict() for p in reporting_service.list_purchases(**args)]


@operation
def list_issues(principal: Principal, store_id=None, product_id=None, start_date=None, end_date=None):
    authorize(principal, "VIEW_INVENTORY")
    args = _listing_args(principal, store_id, product_id, start_date, end_date)
    return [i.to_dict() for i in reporting_service.list_issues(**args)]


@operation
def period_report(principal: Principal, kind: str, period: str, store_id=None):
    authorize(principal, "VIEW_REPORTS")
    if store_id not in (None, ""):
        store_id = _readable_store(principal, store_id, "VIEW_REPORTS").id
        scope = None
    else:
        store_id = None
        scope = report_store_ids(principal)

    report = reporting_service.period_report(kind, period, store_ids=scope, store_id=store_id)
    rows = report["rows"]
    if kind == "inventory":
        rows = _redact_costs(principal, rows)
        summary = reporting_service.inventory_summary(rows)
        summary["costs_redacted"] = any(r["total_value"] is None for r in rows)
    else:
        rows = [r.to_dict() for r in rows]
        summary = report["summary"]

    summary.update({
        "period": report["period"],
        "start_date": report["start_date"],
        "end_date": report["end_date"],
    })
    return WithSummary(serialize_amounts(rows), serialize_amounts(summary))


@operation
def issueable_stores(principal: Principal):
    """Stores the caller may issue from, and the stores each kind of source may issue to."""
    authorize(principal, "RECORD_ISSUE")
    active = store_service.list_stores()
    from_stores = [s for s in active if can_manage_store(principal, s)]

    if principal.role == ADMIN:
        to_stores = active
    elif principal.role == CENTRAL_STORE_MANAGER:
        to_stores = [s for s in active if s.type == "project"]
    elif principal.role == PROJECT_STORE_MANAGER:
        to_stores = [s for s in active if s.type == "central"]
    else:
        to_stores = []

    return {
        "from_stores": [s.to_dict() for s in from_stores],
        "to_stores": [s.to_dict() for s in to_stores],
    }
