# Overview: Weighted-average cost per (store, product), derived from purchase history.

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from ..decimal_utils import ZERO, quantize
from ..extensions import db
from ..models import InventoryBalance, Purchase
"""
SiteStock Costing Invariants (authoritative)

- Average cost is computed from non-deleted purchases of the (store, product):
    sum(qty * unit_cost) / sum(qty)   (2 places, half-up)
  and is 0 when there is no purchase history.
- Issues never feed average cost, in either the source or destination store.
- Nothing is cached; every call re-reads history, so a deleted purchase is
  reflected immediately.
- Sums are accumulated as Decimal in Python so the result does not depend on
  purchase order or on the storage engine's numeric type.
"""


def _weighted(rows) -> Decimal:
    total_qty = ZERO
    total_cost = ZERO
    for quantity, unit_cost in rows:
        total_qty += quantity
        total_cost += quantity * unit_cost
    if total_qty <= 0:
        return ZERO
    return quantize(total_cost / total_qty)


def average_cost(store_id: int, product_id: int) -> Decimal:
    rows = (
        db.session.query(Purchase.quantity, Purchase.unit_cost)
        .filter(
            Purchase.store_id == store_id,
            Purchase.product_id == product_id,
            Purchase.deleted_at.is_(None),
        )
        .all()
    )
    return _weighted(rows)


def inventory_value(store_id: int, product_id: int, quantity: Decimal | None = None) -> Decimal:
    """average_cost x balance, 2 places. quantity defaults to the current balance."""
    if quantity is None:
        balance = InventoryBalance.query.filter_by(store_id=store_id, product_id=product_id).first()
        quantity = balance.quantity if balance is not None else ZERO
    return quantize(average_cost(store_id, product_id) * quantity)


def average_costs(store_ids: list[int] | None = None) -> dict[tuple[int, int], Decimal]:
    """Average cost for every (store, product) with purchase history, in one query."""
    q = db.session.query(
        Purchase.store_id, Purchase.product_id, Purchase.quantity, Purchase.unit_cost
    ).filter(Purchase.deleted_at.is_(None))
    if store_ids is not None:
        q = q.filter(Purchase.store_id.in_(store_ids))

    grouped: dict[tuple[int, int], list] = defaultdict(list)
    for store_id, product_id, quantity, unit_cost in q.all():
        grouped[(store_id, product_id)].append((quantity, unit_cost))
    return {key: _weighted(rows) for key, rows in grouped.items()}
