# Overview: Ledger engine; applies purchases, issues and their reversals to stock balances.

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..decimal_utils import ZERO, fmt, quantize
from ..errors import ConflictError, InsufficientStockError, NotFound, ValidationError
from ..extensions import db
from ..models import InventoryBalance, Issue, Product, Purchase, Store
from ..time_utils import today, utcnow
from ..validation import ModelValidationPolicy, enforce_rules_issue, enforce_rules_purchase, validate_payload
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .costing_service import average_cost
"""
SiteStock Ledger Invariants (authoritative)

Stock model:
- InventoryBalance holds the authoritative quantity per (store, product) and
  is only written here.
- Conservation: for every (store, product)
    balance = sum(purchases) - sum(issues out) + sum(issues in)
  over non-deleted rows. reconcile() re-checks this from history.
- A balance never goes below zero. An issue larger than the balance is an
  InsufficientStockError; a reversal or purchase edit that would go negative
  is a ConflictError.

Movements:
- Purchase: balance[store] += quantity; total_cost = quantity x unit_cost.
- Issue: balance[from] -= quantity and, when to_store_id is set,
  balance[to] += quantity. unit_cost/total_cost snapshot the source store's
  average cost at issue time.
- Deleting a purchase/issue soft-deletes it and applies the inverse delta
  exactly once; deleting an already-deleted row is a no-op.
- A repeated client_request_id returns the row it created instead of
  applying the movement again.

Concurrency:
- Every public mutation is one transaction: read balance (FOR UPDATE where
  supported), validate, write movement + balance + audit event, commit.
- The balance version counter makes concurrent writers fail with
  StaleDataError; run_with_retry replays the whole transaction on fresh state.
"""

logger = logging.getLogger(__name__)

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={
        "store_id", "product_id", "quantity", "unit_cost",
        "purchase_date", "notes", "client_request_id",
    },
    required_on_create={"store_id", "product_id", "quantity", "unit_cost"},
)

PURCHASE_EDIT_POLICY = ModelValidationPolicy(
    writable_fields={"store_id", "product_id", "quantity", "unit_cost", "purchase_date", "notes"},
)

ISSUE_POLICY = ModelValidationPolicy(
    writable_fields={
        "from_store_id", "to_store_id", "product_id", "quantity",
        "issued_to_name", "issue_date", "notes", "client_request_id",
    },
    required_on_create={"from_store_id", "product_id", "quantity"},
)

# Concurrent first-time balance inserts collide on the unique key; replay them
_RETRY_ON = (IntegrityError,)


def _active_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None or store.deleted_at is not None:
        raise NotFound("Store not found")
    return store


def _active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.deleted_at is not None:
        raise NotFound("Product not found")
    return product


def _balance_row(store_id: int, product_id: int, *, create: bool = False) -> InventoryBalance | None:
    q = lock_for_update(InventoryBalance.query.filter_by(store_id=store_id, product_id=product_id))
    balance = q.first()
    if balance is None and create:
        balance = InventoryBalance(store_id=store_id, product_id=product_id, quantity=ZERO)
        db.session.add(balance)
        db.session.flush()
    return balance


def _increase(store_id: int, product_id: int, quantity: Decimal) -> InventoryBalance:
    balance = _balance_row(store_id, product_id, create=True)
    balance.quantity = quantize(balance.quantity + quantity)
    return balance


def _decrease_or_conflict(store_id: int, product_id: int, quantity: Decimal, *, message: str) -> InventoryBalance:
    """Take quantity out of a balance for a reversal; ConflictError if that would go negative."""
    balance = _balance_row(store_id, product_id)
    available = balance.quantity if balance is not None else ZERO
    if available < quantity:
        raise ConflictError(f"{message} (available {fmt(available)}, required {fmt(quantity)})")
    balance.quantity = quantize(available - quantity)
    return balance


def get_balance(store_id: int, product_id: int) -> Decimal:
    """Current stock of a product in a store; 0 when nothing was ever recorded."""
    balance = InventoryBalance.query.filter_by(store_id=store_id, product_id=product_id).first()
    return balance.quantity if balance is not None else ZERO


# -- Purchases --

def _existing_purchase(client_request_id: str, patch: dict) -> Purchase | None:
    existing = Purchase.query.filter_by(client_request_id=client_request_id).first()
    if existing is None:
        return None
    same = (
        existing.store_id == patch["store_id"]
        and existing.product_id == patch["product_id"]
        and existing.quantity == patch["quantity"]
        and existing.unit_cost == patch["unit_cost"]
    )
    if not same:
        raise ConflictError("client_request_id already used for a different purchase")
    return existing


def record_purchase(payload: dict, *, created_by: str | None = None) -> Purchase:
    """
    Record a purchase into a store and raise its balance.

    payload: store_id, product_id, quantity (> 0), unit_cost (>= 0),
    optional purchase_date (defaults to today), notes, client_request_id.
    """
    patch = validate_payload(model=Purchase, payload=payload, policy=PURCHASE_POLICY, partial=False)
    enforce_rules_purchase(patch)

    def _op():
        request_id = patch.get("client_request_id")
        if request_id:
            existing = _existing_purchase(request_id, patch)
            if existing is not None:
                return existing

        store = _active_store(patch["store_id"])
        product = _active_product(patch["product_id"])

        purchase = Purchase(
            store_id=store.id,
            product_id=product.id,
            quantity=patch["quantity"],
            unit_cost=patch["unit_cost"],
            total_cost=quantize(patch["quantity"] * patch["unit_cost"]),
            purchase_date=patch.get("purchase_date") or today(),
            notes=patch.get("notes"),
            created_by=created_by,
            client_request_id=request_id,
        )
        db.session.add(purchase)
        db.session.flush()

        _increase(store.id, product.id, purchase.quantity)

        append_audit_event(
            event_type="PURCHASE_RECORDED",
            entity_type="purchase",
            entity_id=purchase.id,
            store_id=store.id,
            actor_id=created_by,
            payload={"product_id": product.id, "quantity": purchase.quantity, "unit_cost": purchase.unit_cost},
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op, retry_on=_RETRY_ON)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFound("Purchase not found")
    return purchase


def update_purchase(purchase_id: int, payload: dict, *, actor_id: str | None = None) -> Purchase:
    """
    Correct an existing purchase.

    total_cost is recomputed. When quantity, store or product change, the
    difference is moved between balances; a change that would leave any
    balance negative (stock already issued) is a ConflictError.
    """
    patch = validate_payload(model=Purchase, payload=payload, policy=PURCHASE_EDIT_POLICY, partial=True)
    enforce_rules_purchase(patch)

    def _op():
        purchase = lock_for_update(Purchase.query.filter_by(id=purchase_id)).first()
        if purchase is None:
            raise NotFound("Purchase not found")
        if purchase.deleted_at is not None:
            raise ConflictError("Cannot edit a deleted purchase")

        before = {
            "store_id": purchase.store_id,
            "product_id": purchase.product_id,
            "quantity": purchase.quantity,
            "unit_cost": purchase.unit_cost,
        }
        new_store_id = patch.get("store_id", purchase.store_id)
        new_product_id = patch.get("product_id", purchase.product_id)
        new_quantity = patch.get("quantity", purchase.quantity)

        if new_store_id != purchase.store_id:
            _active_store(new_store_id)
        if new_product_id != purchase.product_id:
            _active_product(new_product_id)

        same_pair = new_store_id == purchase.store_id and new_product_id == purchase.product_id
        if same_pair and new_quantity > purchase.quantity:
            store = db.session.get(Store, purchase.store_id)
            product = db.session.get(Product, purchase.product_id)
            if store is None or store.deleted_at is not None:
                raise ConflictError("Cannot add stock to a deleted store")
            if product is None or product.deleted_at is not None:
                raise ConflictError("Cannot add stock of a deleted product")

        message = "Purchase change would make stock negative"
        if same_pair:
            delta = new_quantity - purchase.quantity
            if delta > 0:
                _increase(new_store_id, new_product_id, delta)
            elif delta < 0:
                _decrease_or_conflict(new_store_id, new_product_id, -delta, message=message)
        else:
            _decrease_or_conflict(purchase.store_id, purchase.product_id, purchase.quantity, message=message)
            _increase(new_store_id, new_product_id, new_quantity)

        for k, v in patch.items():
            setattr(purchase, k, v)
        purchase.total_cost = quantize(purchase.quantity * purchase.unit_cost)

        append_audit_event(
            event_type="PURCHASE_UPDATED",
            entity_type="purchase",
            entity_id=purchase.id,
            store_id=purchase.store_id,
            actor_id=actor_id,
            payload={"before": before, "changes": patch},
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op, retry_on=_RETRY_ON)


def delete_purchase(purchase_id: int, *, deleted_by: str | None = None) -> Purchase:
    """Soft-delete a purchase and take its quantity back out of the store."""
    def _op():
        purchase = lock_for_update(Purchase.query.filter_by(id=purchase_id)).first()
        if purchase is None:
            raise NotFound("Purchase not found")
        if purchase.deleted_at is not None:
            return purchase

        _decrease_or_conflict(
            purchase.store_id,
            purchase.product_id,
            purchase.quantity,
            message="Cannot delete purchase: its stock has already been issued",
        )
        purchase.deleted_at = utcnow()
        purchase.deleted_by = deleted_by

        append_audit_event(
            event_type="PURCHASE_DELETED",
            entity_type="purchase",
            entity_id=purchase.id,
            store_id=purchase.store_id,
            actor_id=deleted_by,
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op, retry_on=_RETRY_ON)


# -- Issues --

def _existing_issue(client_request_id: str, patch: dict) -> Issue | None:
    existing = Issue.query.filter_by(client_request_id=client_request_id).first()
    if existing is None:
        return None
    same = (
        existing.from_store_id == patch["from_store_id"]
        and existing.to_store_id == patch.get("to_store_id")
        and existing.product_id == patch["product_id"]
        and existing.quantity == patch["quantity"]
    )
    if not same:
        raise ConflictError("client_request_id already used for a different issue")
    return existing


def _check_issue_route(from_store: Store, to_store: Store | None, issued_to_name: str | None) -> None:
    """Store-type rules for where stock may go."""
    if from_store.type == "central":
        if to_store is None:
            if not current_app.config.get("CENTRAL_ISSUE_TO_INDIVIDUALS", False):
                raise ValidationError("Central stores must select a destination store")
            if not issued_to_name:
                raise ValidationError("Recipient name is required when issuing to an individual")
        elif to_store.type != "project":
            raise ValidationError("Central stores can only issue to project stores")
        return

    if to_store is None:
        if not issued_to_name:
            raise ValidationError("Recipient name is required when issuing to an individual")
    elif to_store.type != "central":
        raise ValidationError("Project stores can only return items to a central store or issue to individuals")


def record_issue(payload: dict, *, created_by: str | None = None) -> Issue:
    """
    Issue stock out of a store, to another store or to a named individual.

    payload: from_store_id, product_id, quantity (> 0), optional to_store_id,
    issued_to_name, issue_date (defaults to today), notes, client_request_id.
    Raises InsufficientStockError when the source balance is short.
    """
    patch = validate_payload(model=Issue, payload=payload, policy=ISSUE_POLICY, partial=False)
    enforce_rules_issue(patch)

    def _op():
        request_id = patch.get("client_request_id")
        if request_id:
            existing = _existing_issue(request_id, patch)
            if existing is not None:
                return existing

        from_store = _active_store(patch["from_store_id"])
        product = _active_product(patch["product_id"])
        to_store = _active_store(patch["to_store_id"]) if patch.get("to_store_id") is not None else None
        issued_to_name = patch.get("issued_to_name")

        _check_issue_route(from_store, to_store, issued_to_name)

        quantity = patch["quantity"]
        source = _balance_row(from_store.id, product.id)
        available = source.quantity if source is not None else ZERO
        if available < quantity:
            raise InsufficientStockError(available=available, requested=quantity, unit=product.unit)

        unit_cost = average_cost(from_store.id, product.id)
        issue = Issue(
            from_store_id=from_store.id,
            to_store_id=to_store.id if to_store is not None else None,
            product_id=product.id,
            quantity=quantity,
            issued_to_name=issued_to_name,
            unit_cost=unit_cost,
            total_cost=quantize(quantity * unit_cost),
            issue_date=patch.get("issue_date") or today(),
            notes=patch.get("notes"),
            created_by=created_by,
            client_request_id=request_id,
        )
        db.session.add(issue)
        db.session.flush()

        source.quantity = quantize(available - quantity)
        if to_store is not None:
            _increase(to_store.id, product.id, quantity)

        append_audit_event(
            event_type="ISSUE_RECORDED",
            entity_type="issue",
            entity_id=issue.id,
            store_id=from_store.id,
            actor_id=created_by,
            payload={
                "product_id": product.id,
                "quantity": quantity,
                "to_store_id": issue.to_store_id,
                "issued_to_name": issued_to_name,
            },
        )
        db.session.commit()
        return issue

    return run_with_retry(_op, retry_on=_RETRY_ON)


def get_issue(issue_id: int) -> Issue:
    issue = db.session.get(Issue, issue_id)
    if issue is None:
        raise NotFound("Issue not found")
    return issue


def delete_issue(issue_id: int, *, deleted_by: str | None = None) -> Issue:
    """
    Soft-delete an issue: stock returns to the source store and, for store
    destinations, leaves the destination store.
    """
    def _op():
        issue = lock_for_update(Issue.query.filter_by(id=issue_id)).first()
        if issue is None:
            raise NotFound("Issue not found")
        if issue.deleted_at is not None:
            return issue

        source = db.session.get(Store, issue.from_store_id)
        if source is None or source.deleted_at is not None:
            raise ConflictError("Cannot reverse an issue into a deleted store")

        if issue.to_store_id is not None:
            _decrease_or_conflict(
                issue.to_store_id,
                issue.product_id,
                issue.quantity,
                message="Cannot delete issue: the receiving store has already used this stock",
            )
        _increase(issue.from_store_id, issue.product_id, issue.quantity)

        issue.deleted_at = utcnow()
        issue.deleted_by = deleted_by

        append_audit_event(
            event_type="ISSUE_DELETED",
            entity_type="issue",
            entity_id=issue.id,
            store_id=issue.from_store_id,
            actor_id=deleted_by,
        )
        db.session.commit()
        return issue

    return run_with_retry(_op, retry_on=_RETRY_ON)


def reverse_deletion(kind: str, entity_id: int, *, deleted_by: str | None = None):
    """Soft-delete a purchase or issue and undo its stock effect (idempotent)."""
    if kind == "purchase":
        return delete_purchase(entity_id, deleted_by=deleted_by)
    if kind == "issue":
        return delete_issue(entity_id, deleted_by=deleted_by)
    raise ValidationError("kind must be 'purchase' or 'issue'")


# -- Reconciliation --

def expected_balances() -> dict[tuple[int, int], Decimal]:
    """Re-derive every (store, product) balance from non-deleted history."""
    expected: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)

    purchases = db.session.query(Purchase.store_id, Purchase.product_id, Purchase.quantity).filter(
        Purchase.deleted_at.is_(None)
    )
    for store_id, product_id, quantity in purchases:
        expected[(store_id, product_id)] += quantity

    issues = db.session.query(
        Issue.from_store_id, Issue.to_store_id, Issue.product_id, Issue.quantity
    ).filter(Issue.deleted_at.is_(None))
    for from_store_id, to_store_id, product_id, quantity in issues:
        expected[(from_store_id, product_id)] -= quantity
        if to_store_id is not None:
            expected[(to_store_id, product_id)] += quantity

    return dict(expected)


def reconcile(*, fix: bool = False, actor_id: str | None = None) -> dict:
    """
    Compare stored balances with history.

    Returns {"checked", "mismatches": [{store_id, product_id, expected, actual}], "fixed"}.
    With fix=True, mismatched balances are overwritten with the expected value
    (negative expectations are reported but never written).
    """
    def _op():
        expected = expected_balances()
        actual = {(b.store_id, b.product_id): b for b in InventoryBalance.query.all()}

        mismatches = []
        fixed = 0
        for key in sorted(set(expected) | set(actual)):
            want = quantize(expected.get(key, ZERO))
            row = actual.get(key)
            have = row.quantity if row is not None else ZERO
            if want == have:
                continue

            mismatches.append({
                "store_id": key[0],
                "product_id": key[1],
                "expected": fmt(want),
                "actual": fmt(have),
            })
            logger.warning("Balance mismatch store=%s product=%s expected=%s actual=%s", key[0], key[1], want, have)

            if fix and want >= 0:
                if row is None:
                    row = _balance_row(key[0], key[1], create=True)
                row.quantity = want
                append_audit_event(
                    event_type="BALANCE_RECONCILED",
                    entity_type="inventory_balance",
                    entity_id=row.id,
                    store_id=key[0],
                    actor_id=actor_id,
                    payload={"product_id": key[1], "expected": want, "actual": have},
                )
                fixed += 1

        if fix:
            db.session.commit()
        else:
            db.session.rollback()
        return {"checked": len(set(expected) | set(actual)), "mismatches": mismatches, "fixed": fixed}

    return run_with_retry(_op, retry_on=_RETRY_ON)
