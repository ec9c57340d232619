# Overview: Read-side views over the ledger: balances, movement history, period reports.

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from ..decimal_utils import ZERO, fmt, quantize
from ..errors import ValidationError
from ..extensions import db
from ..models import Category, InventoryBalance, Issue, Product, Purchase, Store
from ..time_utils import to_iso_date, to_utc_z, today
from .costing_service import average_costs

REPORT_KINDS = ("purchases", "issues", "inventory")
REPORT_PERIODS = ("today", "weekly", "monthly", "quarterly", "annual", "lifetime")


def period_range(period: str, *, on: date | None = None) -> tuple[date | None, date | None]:
    """
    Inclusive business-date range for a report period, ending today.

    weekly covers the last 7 days including today. lifetime is unbounded.
    """
    if period not in REPORT_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(REPORT_PERIODS)}")

    end = on or today()
    if period == "today":
        start = end
    elif period == "weekly":
        start = end - timedelta(days=6)
    elif period == "monthly":
        start = end.replace(day=1)
    elif period == "quarterly":
        start = date(end.year, ((end.month - 1) // 3) * 3 + 1, 1)
    elif period == "annual":
        start = date(end.year, 1, 1)
    else:
        return None, None
    return start, end


def _scope(q, column, store_ids):
    if store_ids is not None:
        q = q.filter(column.in_(store_ids))
    return q


# -- Balances --

def list_balances(
    *,
    store_ids: list[int] | None = None,
    store_id: int | None = None,
    product_id: int | None = None,
) -> list[dict]:
    """
    Balances joined with store, product and category, with cost figures.

    Rows for soft-deleted stores or products are left out. needs_restock is
    set when restock_level > 0 and quantity <= restock_level.
    """
    q = (
        db.session.query(InventoryBalance, Store, Product, Category)
        .join(Store, Store.id == InventoryBalance.store_id)
        .join(Product, Product.id == InventoryBalance.product_id)
        .join(Category, Category.id == Product.category_id)
        .filter(Store.deleted_at.is_(None), Product.deleted_at.is_(None))
    )
    q = _scope(q, InventoryBalance.store_id, store_ids)
    if store_id is not None:
        q = q.filter(InventoryBalance.store_id == store_id)
    if product_id is not None:
        q = q.filter(InventoryBalance.product_id == product_id)

    results = q.order_by(Store.name.asc(), Product.name.asc()).all()
    costs = average_costs(sorted({b.store_id for b, _, _, _ in results})) if results else {}

    rows = []
    for balance, store, product, category in results:
        avg = costs.get((store.id, product.id), ZERO)
        restock_level = product.restock_level or ZERO
        rows.append({
            "store_id": store.id,
            "store_name": store.name,
            "store_type": store.type,
            "product_id": product.id,
            "product_name": product.name,
            "category_id": category.id,
            "category_name": category.name,
            "unit": product.unit,
            "quantity": balance.quantity,
            "restock_level": restock_level,
            "needs_restock": restock_level > 0 and balance.quantity <= restock_level,
            "average_cost": avg,
            "total_value": quantize(avg * balance.quantity),
            "updated_at": to_utc_z(balance.updated_at),
        })
    return rows


# -- Movements --

def list_movements(store_id: int, product_id: int) -> dict:
    """
    Chronological movement history for one (store, product) with running balance.

    Types: "purchase", "issue_in" (received from another store) and
    "issue_out". Ordered by business date, then creation time.
    """
    purchases = Purchase.query.filter(
        Purchase.store_id == store_id,
        Purchase.product_id == product_id,
        Purchase.deleted_at.is_(None),
    ).all()
    issues_out = Issue.query.filter(
        Issue.from_store_id == store_id,
        Issue.product_id == product_id,
        Issue.deleted_at.is_(None),
    ).all()
    issues_in = Issue.query.filter(
        Issue.to_store_id == store_id,
        Issue.product_id == product_id,
        Issue.deleted_at.is_(None),
    ).all()

    events = []
    for p in purchases:
        events.append((p.purchase_date, p.created_at, "purchase", p, p.quantity))
    for i in issues_in:
        events.append((i.issue_date, i.created_at, "issue_in", i, i.quantity))
    for i in issues_out:
        events.append((i.issue_date, i.created_at, "issue_out", i, -i.quantity))
    events.sort(key=lambda e: (e[0], e[1], e[3].id))

    running = ZERO
    received = ZERO
    issued = ZERO
    movements = []
    for when, created_at, kind, row, change in events:
        running += change
        if change > 0:
            received += change
        else:
            issued -= change

        if kind == "purchase":
            counterparty = None
        elif kind == "issue_in":
            counterparty = row.from_store.name if row.from_store else None
        else:
            counterparty = row.to_store.name if row.to_store else row.issued_to_name

        movements.append({
            "type": kind,
            "id": row.id,
            "date": to_iso_date(when),
            "created_at": to_utc_z(created_at),
            "quantity": abs(change),
            "quantity_change": change,
            "unit_cost": row.unit_cost,
            "counterparty": counterparty,
            "notes": row.notes,
            "running_balance": running,
        })

    return {
        "store_id": store_id,
        "product_id": product_id,
        "movements": movements,
        "total_received": received,
        "total_issued": issued,
        "balance": running,
    }


# -- Purchases / issues --

def list_purchases(
    *,
    store_ids: list[int] | None = None,
    store_id: int | None = None,
    product_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Purchase]:
    q = Purchase.query.filter(Purchase.deleted_at.is_(None))
    q = _scope(q, Purchase.store_id, store_ids)
    if store_id is not None:
        q = q.filter(Purchase.store_id == store_id)
    if product_id is not None:
        q = q.filter(Purchase.product_id == product_id)
    if start_date is not None:
        q = q.filter(Purchase.purchase_date >= start_date)
    if end_date is not None:
        q = q.filter(Purchase.purchase_date <= end_date)
    return q.order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc(), Purchase.id.desc()).all()


def list_issues(
    *,
    store_ids: list[int] | None = None,
    store_id: int | None = None,
    product_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Issue]:
    """Issues touching the store(s), as source or destination. Newest first."""
    q = Issue.query.filter(Issue.deleted_at.is_(None))
    if store_ids is not None:
        q = q.filter(db.or_(Issue.from_store_id.in_(store_ids), Issue.to_store_id.in_(store_ids)))
    if store_id is not None:
        q = q.filter(db.or_(Issue.from_store_id == store_id, Issue.to_store_id == store_id))
    if product_id is not None:
        q = q.filter(Issue.product_id == product_id)
    if start_date is not None:
        q = q.filter(Issue.issue_date >= start_date)
    if end_date is not None:
        q = q.filter(Issue.issue_date <= end_date)
    return q.order_by(Issue.issue_date.desc(), Issue.created_at.desc(), Issue.id.desc()).all()


# -- Summaries --

def purchase_summary(purchases: list[Purchase]) -> dict:
    total_quantity = sum((p.quantity for p in purchases), ZERO)
    total_cost = sum((p.total_cost for p in purchases), ZERO)
    average_unit_cost = quantize(total_cost / total_quantity) if total_quantity > 0 else ZERO
    return {
        "total_purchases": len(purchases),
        "total_quantity": total_quantity,
        "total_cost": total_cost,
        "average_unit_cost": average_unit_cost,
    }


def issue_summary(issues: list[Issue]) -> dict:
    to_stores = [i for i in issues if i.to_store_id is not None]
    return {
        "total_issues": len(issues),
        "issues_to_stores": len(to_stores),
        "issues_to_individuals": len(issues) - len(to_stores),
        "total_quantity": sum((i.quantity for i in issues), ZERO),
        "total_cost": sum((i.total_cost for i in issues), ZERO),
        "cost_to_stores": sum((i.total_cost for i in to_stores), ZERO),
    }


def inventory_summary(rows: list[dict]) -> dict:
    by_store: dict[str, dict] = {}
    for row in rows:
        entry = by_store.setdefault(
            row["store_name"], {"store_id": row["store_id"], "quantity": ZERO, "value": ZERO}
        )
        entry["quantity"] += row["quantity"]
        entry["value"] += row["total_value"] or ZERO
    return {
        "total_items": len(rows),
        "total_quantity": sum((r["quantity"] for r in rows), ZERO),
        "total_value": sum((r["total_value"] or ZERO for r in rows), ZERO),
        "by_store": by_store,
    }


def period_report(
    kind: str,
    period: str,
    *,
    store_ids: list[int] | None = None,
    store_id: int | None = None,
    on: date | None = None,
) -> dict:
    """
    Rows plus summary for a report kind over a period.

    purchases/issues filter on business date. inventory is a current snapshot;
    its period is echoed back but does not filter.
    """
    if kind not in REPORT_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(REPORT_KINDS)}")
    start, end = period_range(period, on=on)

    if kind == "purchases":
        rows = list_purchases(store_ids=store_ids, store_id=store_id, start_date=start, end_date=end)
        summary = purchase_summary(rows)
    elif kind == "issues":
        rows = list_issues(store_ids=store_ids, store_id=store_id, start_date=start, end_date=end)
        summary = issue_summary(rows)
    else:
        rows = list_balances(store_ids=store_ids, store_id=store_id)
        summary = inventory_summary(rows)

    return {
        "kind": kind,
        "period": period,
        "start_date": to_iso_date(start),
        "end_date": to_iso_date(end),
        "rows": rows,
        "summary": summary,
    }


def serialize_amounts(data):
    """Recursively render Decimal values as fixed 2-place strings for JSON."""
    if isinstance(data, Decimal):
        return fmt(data)
    if isinstance(data, dict):
        return {k: serialize_amounts(v) for k, v in data.items()}
    if isinstance(data, list):
        return [serialize_amounts(v) for v in data]
    return data
