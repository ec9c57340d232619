from decimal import Decimal

import pytest

from sitestock.errors import ConflictError, InsufficientStockError, NotFound, ValidationError
from sitestock.extensions import db
from sitestock.models import AuditEvent, InventoryBalance, Issue, Purchase
from sitestock.services import catalog_service, costing_service, inventory_service, reporting_service, store_service


def test_purchase_increases_balance_and_sets_cost(central_store, product, purchase, balance):
    p = purchase(central_store, product, 100, "10.00")

    assert balance(central_store, product) == Decimal("100.00")
    assert p.total_cost == Decimal("1000.00")
    assert costing_service.average_cost(central_store.id, product.id) == Decimal("10.00")


def test_issue_moves_stock_between_stores(central_store, project_store, product, purchase, issue, balance):
    purchase(central_store, product, 100, "10.00")
    i = issue(central_store, product, 40, to_store=project_store)

    assert balance(central_store, product) == Decimal("60.00")
    assert balance(project_store, product) == Decimal("40.00")
    # cost snapshot from the source store's average cost
    assert i.unit_cost == Decimal("10.00")
    assert i.total_cost == Decimal("400.00")


def test_issue_exceeding_balance_is_rejected(central_store, project_store, product, purchase, issue, balance):
    purchase(central_store, product, 100, "10.00")
    issue(central_store, product, 40, to_store=project_store)

    with pytest.raises(InsufficientStockError) as excinfo:
        issue(central_store, product, 1000, to_store=project_store)

    assert excinfo.value.available == Decimal("60.00")
    assert excinfo.value.unit == "bags"
    assert "60.00" in excinfo.value.message
    assert balance(central_store, product) == Decimal("60.00")
    assert Issue.query.count() == 1


def test_issue_from_empty_store_reports_zero_available(central_store, project_store, product, issue):
    with pytest.raises(InsufficientStockError) as excinfo:
        issue(central_store, product, 1, to_store=project_store)
    assert excinfo.value.available == Decimal("0")


def test_deleting_purchase_already_issued_against_is_a_conflict(
    central_store, project_store, product, purchase, issue, balance
):
    p = purchase(central_store, product, 100, "10.00")
    issue(central_store, product, 40, to_store=project_store)

    with pytest.raises(ConflictError):
        inventory_service.delete_purchase(p.id, deleted_by="admin-1")

    assert balance(central_store, product) == Decimal("60.00")
    assert db.session.get(Purchase, p.id).deleted_at is None


def test_purchase_deletion_is_applied_once(central_store, product, purchase, balance):
    purchase(central_store, product, 30, "4.00")
    p = purchase(central_store, product, 50, "5.00")

    first = inventory_service.delete_purchase(p.id, deleted_by="admin-1")
    deleted_at = first.deleted_at
    second = inventory_service.delete_purchase(p.id, deleted_by="someone-else")

    assert balance(central_store, product) == Decimal("30.00")
    assert second.deleted_at == deleted_at
    assert second.deleted_by == "admin-1"
    assert AuditEvent.query.filter_by(event_type="PURCHASE_DELETED").count() == 1


def test_issue_deletion_returns_stock_once(central_store, project_store, product, purchase, issue, balance):
    purchase(central_store, product, 100, "10.00")
    i = issue(central_store, product, 40, to_store=project_store)

    inventory_service.reverse_deletion("issue", i.id, deleted_by="admin-1")
    inventory_service.reverse_deletion("issue", i.id, deleted_by="admin-1")

    assert balance(central_store, product) == Decimal("100.00")
    assert balance(project_store, product) == Decimal("0.00")


def test_issue_deletion_blocked_when_destination_used_the_stock(
    central_store, project_store, product, purchase, issue, balance
):
    purchase(central_store, product, 100, "10.00")
    i = issue(central_store, product, 40, to_store=project_store)
    issue(project_store, product, 30, issued_to_name="Site crew A")

    with pytest.raises(ConflictError):
        inventory_service.delete_issue(i.id, deleted_by="admin-1")

    assert balance(central_store, product) == Decimal("60.00")
    assert balance(project_store, product) == Decimal("10.00")


def test_reverse_deletion_rejects_unknown_kind(db_session):
    with pytest.raises(ValidationError):
        inventory_service.reverse_deletion("transfer", 1)


def test_conservation_holds_after_mixed_activity(
    central_store, project_store, other_project_store, product, purchase, issue, balance
):
    purchase(central_store, product, 120, "8.50")
    purchase(central_store, product, "30.25", "9.00")
    issue(central_store, product, 50, to_store=project_store)
    issue(central_store, product, "20.25", to_store=other_project_store)
    issue(project_store, product, 15, issued_to_name="Foreman")
    issue(project_store, product, 5, to_store=central_store)

    result = inventory_service.reconcile()

    assert result["mismatches"] == []
    assert balance(central_store, product) == Decimal("85.00")
    assert balance(project_store, product) == Decimal("30.00")
    assert balance(other_project_store, product) == Decimal("20.25")


def test_reconcile_reports_and_fixes_drift(central_store, product, purchase, balance):
    purchase(central_store, product, 100, "10.00")
    InventoryBalance.query.filter_by(store_id=central_store.id, product_id=product.id).update(
        {"quantity": Decimal("90.00")}
    )
    db.session.commit()

    report = inventory_service.reconcile()
    assert report["mismatches"] == [{
        "store_id": central_store.id,
        "product_id": product.id,
        "expected": "100.00",
        "actual": "90.00",
    }]
    assert balance(central_store, product) == Decimal("90.00")

    fixed = inventory_service.reconcile(fix=True, actor_id="cli")
    assert fixed["fixed"] == 1
    assert balance(central_store, product) == Decimal("100.00")
    assert inventory_service.reconcile()["mismatches"] == []


def test_total_cost_rounds_half_up_to_two_places(central_store, product, purchase):
    assert purchase(central_store, product, 3, "3.33").total_cost == Decimal("9.99")
    assert purchase(central_store, product, "0.50", "2.25").total_cost == Decimal("1.13")
    assert purchase(central_store, product, "0.10", "0.10").total_cost == Decimal("0.01")



def test_totals_do_not_drift_over_many_purchases(central_store, product, purchase):
    costs = ["0.10", "0.20", "0.30", "1.15", "2.35", "0.01", "9.99"]
    expected = Decimal("0")
    for i in range(70):
        quantity = (i % 5) + 1
        cost = costs[i % len(costs)]
        purchase(central_store, product, quantity, cost)
        expected += Decimal(quantity) * Decimal(cost)

    rows = reporting_service.list_purchases(store_id=central_store.id)
    assert len(rows) == 70
    assert sum((p.total_cost for p in rows), Decimal("0")) == expected

    summary = reporting_service.purchase_summary(rows)
    assert summary["total_cost"] == expected
    assert summary["total_quantity"] == Decimal("210.00")


@pytest.mark.parametrize("quantity", ["0", "-5", "1.234", "abc", None])
def test_purchase_rejects_bad_quantity(central_store, product, purchase, quantity):
    with pytest.raises(ValidationError):
        inventory_service.record_purchase({
            "store_id": central_store.id,
            "product_id": product.id,
            "quantity": quantity,
            "unit_cost": "1.00",
        })


def test_purchase_rejects_negative_cost(central_store, product, purchase):
    with pytest.raises(ValidationError):
        purchase(central_store, product, 1, "-0.01")


def test_purchase_into_deleted_store_is_not_found(central_store, product, purchase):
    store_service.soft_delete_store(central_store.id)
    with pytest.raises(NotFound):
        purchase(central_store, product, 1, "1.00")


def test_purchase_date_defaults_to_today_and_accepts_iso(central_store, product, purchase):
    dated = purchase(central_store, product, 1, "1.00", purchase_date="2026-03-14")
    assert dated.purchase_date.isoformat() == "2026-03-14"

    with pytest.raises(ValidationError):
        purchase(central_store, product, 1, "1.00", purchase_date="14/03/2026")


def test_repeated_request_id_returns_original_purchase(central_store, product, purchase, balance):
    first = purchase(central_store, product, 100, "10.00", client_request_id="req-1")
    again = purchase(central_store, product, 100, "10.00", client_request_id="req-1")

    assert again.id == first.id
    assert balance(central_store, product) == Decimal("100.00")

    with pytest.raises(ConflictError):
        purchase(central_store, product, 5, "10.00", client_request_id="req-1")


def test_repeated_request_id_returns_original_issue(central_store, project_store, product, purchase, issue, balance):
    purchase(central_store, product, 100, "10.00")
    first = issue(central_store, product, 10, to_store=project_store, client_request_id="iss-1")
    again = issue(central_store, product, 10, to_store=project_store, client_request_id="iss-1")

    assert again.id == first.id
    assert balance(central_store, product) == Decimal("90.00")


class TestIssueRouting:
    def test_central_store_needs_a_destination(self, central_store, product, purchase, issue):
        purchase(central_store, product, 10, "1.00")
        with pytest.raises(ValidationError, match="destination store"):
            issue(central_store, product, 1, issued_to_name="Someone")

    def test_central_store_may_issue_to_individual_when_enabled(
        self, app, monkeypatch, central_store, product, purchase, issue, balance
    ):
        monkeypatch.setitem(app.config, "CENTRAL_ISSUE_TO_INDIVIDUALS", True)
        purchase(central_store, product, 10, "1.00")

        with pytest.raises(ValidationError, match="Recipient name"):
            issue(central_store, product, 1)

        issue(central_store, product, 4, issued_to_name="Site engineer")
        assert balance(central_store, product) == Decimal("6.00")

    def test_central_store_cannot_issue_to_central_store(self, central_store, product, purchase, issue):
        other_central = store_service.create_store("Annex Yard", "central")
        purchase(central_store, product, 10, "1.00")
        with pytest.raises(ValidationError, match="only issue to project stores"):
            issue(central_store, product, 1, to_store=other_central)

    def test_project_store_cannot_issue_to_project_store(
        self, central_store, project_store, other_project_store, product, purchase, issue
    ):
        purchase(central_store, product, 10, "1.00")
        issue(central_store, product, 10, to_store=project_store)
        with pytest.raises(ValidationError, match="central store or issue to individuals"):
            issue(project_store, product, 1, to_store=other_project_store)

    def test_project_store_issue_to_individual_needs_a_name(
        self, central_store, project_store, product, purchase, issue
    ):
        purchase(central_store, product, 10, "1.00")
        issue(central_store, product, 10, to_store=project_store)
        with pytest.raises(ValidationError, match="Recipient name"):
            issue(project_store, product, 1)

    def test_project_store_returns_to_central(self, central_store, project_store, product, purchase, issue, balance):
        purchase(central_store, product, 10, "1.00")
        issue(central_store, product, 10, to_store=project_store)
        issue(project_store, product, 3, to_store=central_store)

        assert balance(central_store, product) == Decimal("3.00")
        assert balance(project_store, product) == Decimal("7.00")

    def test_cannot_issue_to_same_store(self, central_store, product, purchase, issue):
        purchase(central_store, product, 10, "1.00")
        with pytest.raises(ValidationError, match="same store"):
            issue(central_store, product, 1, to_store=central_store)

    def test_issue_cost_cannot_be_supplied(self, central_store, project_store, product, purchase, issue):
        purchase(central_store, product, 10, "1.00")
        with pytest.raises(ValidationError, match="not allowed"):
            issue(central_store, product, 1, to_store=project_store, unit_cost="0.01")


class TestUpdatePurchase:
    def test_quantity_change_moves_balance_and_recomputes_total(self, central_store, product, purchase, balance):
        p = purchase(central_store, product, 100, "10.00")

        updated = inventory_service.update_purchase(p.id, {"quantity": "80", "unit_cost": "12.50"})

        assert updated.total_cost == Decimal("1000.00")
        assert balance(central_store, product) == Decimal("80.00")

    def test_reduction_below_issued_stock_is_a_conflict(
        self, central_store, project_store, product, purchase, issue, balance
    ):
        p = purchase(central_store, product, 100, "10.00")
        issue(central_store, product, 70, to_store=project_store)

        with pytest.raises(ConflictError):
            inventory_service.update_purchase(p.id, {"quantity": "20"})
        assert balance(central_store, product) == Decimal("30.00")

    def test_moving_purchase_to_another_store(self, central_store, product, purchase, balance):
        annex = store_service.create_store("Annex Yard", "central")
        p = purchase(central_store, product, 25, "2.00")

        inventory_service.update_purchase(p.id, {"store_id": annex.id})

        assert balance(central_store, product) == Decimal("0.00")
        assert balance(annex, product) == Decimal("25.00")
        assert inventory_service.reconcile()["mismatches"] == []

    def test_deleted_purchase_cannot_be_edited(self, central_store, product, purchase):
        p = purchase(central_store, product, 5, "2.00")
        inventory_service.delete_purchase(p.id)
        with pytest.raises(ConflictError):
            inventory_service.update_purchase(p.id, {"quantity": "6"})

    def test_cannot_add_stock_to_deleted_store(self, central_store, project_store, product, purchase, issue, balance):
        p = purchase(central_store, product, 10, "1.00")
        issue(central_store, product, 10, to_store=project_store)
        store_service.soft_delete_store(central_store.id)

        with pytest.raises(ConflictError, match="deleted store"):
            inventory_service.update_purchase(p.id, {"quantity": "30"})

        assert balance(central_store, product) == Decimal("0")
        assert db.session.get(Purchase, p.id).quantity == Decimal("10.00")

    def test_cannot_add_stock_of_deleted_product(self, central_store, product, purchase):
        p = purchase(central_store, product, 10, "1.00")
        inventory_service.delete_purchase(p.id)
        catalog_service.soft_delete_product(product.id)
        # edits of deleted purchases are already refused; restore one by hand
        db.session.get(Purchase, p.id).deleted_at = None
        db.session.commit()

        with pytest.raises(ConflictError, match="deleted product"):
            inventory_service.update_purchase(p.id, {"quantity": "12"})

    def test_price_only_edit_allowed_after_store_retired(self, central_store, project_store, product, purchase, issue):
        p = purchase(central_store, product, 10, "1.00")
        issue(central_store, product, 10, to_store=project_store)
        store_service.soft_delete_store(central_store.id)

        updated = inventory_service.update_purchase(p.id, {"unit_cost": "1.50"})
        assert updated.total_cost == Decimal("15.00")


def test_ledger_mutations_write_audit_events(central_store, project_store, product, purchase, issue):
    purchase(central_store, product, 10, "1.00")
    issue(central_store, product, 2, to_store=project_store)

    types = {e.event_type for e in AuditEvent.query.all()}
    assert {"PURCHASE_RECORDED", "ISSUE_RECORDED"} <= types
