"""
Role and store-scope checks, at the policy level and through the facade.
"""
from decimal import Decimal

import pytest

from sitestock import facade
from sitestock.errors import NotAuthenticated, Unauthorized
from sitestock.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_CODES,
    Principal,
    authorize,
    can_view_costs,
)
from sitestock.services import store_service


class TestAuthorize:
    def test_missing_principal(self, app):
        with pytest.raises(NotAuthenticated):
            authorize(None, "VIEW_INVENTORY")
        with pytest.raises(NotAuthenticated):
            authorize(Principal(user_id="", role="admin"), "VIEW_INVENTORY")

    def test_unknown_permission_code_is_a_programming_error(self, admin):
        with pytest.raises(ValueError):
            authorize(admin, "DO_ANYTHING")

    def test_unknown_role(self, app):
        with pytest.raises(Unauthorized):
            authorize(Principal(user_id="x", role="foreman"), "VIEW_INVENTORY")

    def test_admin_holds_every_permission(self, admin, central_store, project_store):
        assert DEFAULT_ROLE_PERMISSIONS["admin"] == PERMISSION_CODES
        for code in PERMISSION_CODES:
            authorize(admin, code, project_store)
            authorize(admin, code, central_store)

    @pytest.mark.parametrize("code", ["MANAGE_REGISTRY", "DELETE_PURCHASE", "DELETE_ISSUE"])
    def test_admin_only_permissions(self, central_manager, project_manager, code):
        with pytest.raises(Unauthorized):
            authorize(central_manager, code)
        with pytest.raises(Unauthorized):
            authorize(project_manager, code)

    def test_central_manager_scope(self, central_manager, central_store, project_store):
        authorize(central_manager, "RECORD_PURCHASE", central_store)
        authorize(central_manager, "RECORD_ISSUE", central_store)
        authorize(central_manager, "VIEW_INVENTORY", project_store)
        with pytest.raises(Unauthorized):
            authorize(central_manager, "RECORD_PURCHASE", project_store)
        with pytest.raises(Unauthorized):
            authorize(central_manager, "RECORD_ISSUE", project_store)

    def test_project_manager_scope(self, project_manager, central_store, project_store, other_project_store):
        authorize(project_manager, "RECORD_PURCHASE", project_store)
        authorize(project_manager, "RECORD_ISSUE", project_store)
        authorize(project_manager, "VIEW_INVENTORY", central_store)

        with pytest.raises(Unauthorized):
            authorize(project_manager, "RECORD_ISSUE", central_store)
        with pytest.raises(Unauthorized):
            authorize(project_manager, "RECORD_PURCHASE", other_project_store)
        with pytest.raises(Unauthorized):
            authorize(project_manager, "VIEW_INVENTORY", other_project_store)

    def test_project_purchases_can_be_limited_to_admins(self, app, monkeypatch, admin, project_manager, project_store):
        monkeypatch.setitem(app.config, "PROJECT_STORE_PURCHASES", "admin_only")
        with pytest.raises(Unauthorized):
            authorize(project_manager, "RECORD_PURCHASE", project_store)
        authorize(admin, "RECORD_PURCHASE", project_store)
        with pytest.raises(Unauthorized):
            authorize(project_manager, "EDIT_PURCHASE", project_store)
        authorize(admin, "EDIT_PURCHASE", project_store)
        # issuing is unaffected
        authorize(project_manager, "RECORD_ISSUE", project_store)

    def test_admin_only_policy_blocks_purchase_edits(
        self, app, monkeypatch, project_manager, project_store, product, purchase, balance
    ):
        p = purchase(project_store, product, 10, "4.00")
        monkeypatch.setitem(app.config, "PROJECT_STORE_PURCHASES", "admin_only")

        result = facade.update_purchase(project_manager, p.id, {"quantity": "500"})

        assert result["error"]["kind"] == "Unauthorized"
        assert balance(project_store, product) == Decimal("10.00")

    def test_project_manager_cannot_move_purchase_to_restricted_store(
        self, app, monkeypatch, project_manager, project_store, product, purchase, balance
    ):
        annex = store_service.create_store("Annex Yard", "central")
        p = purchase(project_store, product, 10, "4.00")

        result = facade.update_purchase(project_manager, p.id, {"store_id": annex.id})

        assert result["error"]["kind"] == "Unauthorized"
        assert balance(project_store, product) == Decimal("10.00")
        assert balance(annex, product) == Decimal("0")

    def test_cost_visibility(self, admin, central_manager, project_manager, central_store, project_store):
        assert can_view_costs(admin, project_store)
        assert can_view_costs(central_manager, central_store)
        assert not can_view_costs(central_manager, project_store)
        assert not can_view_costs(project_manager, project_store)
        assert not can_view_costs(project_manager, central_store)


class TestFacade:
    def test_envelope_on_success(self, admin, central_store, product):
        result = facade.record_purchase(admin, {
            "store_id": central_store.id, "product_id": product.id, "quantity": "100", "unit_cost": "10.00",
        })
        assert result["error"] is None
        assert result["data"]["quantity"] == "100.00"
        assert result["data"]["total_cost"] == "1000.00"
        assert result["data"]["created_by"] == "admin-1"

    def test_unauthenticated_envelope(self, central_store):
        result = facade.list_stores(None)
        assert result == {"data": None, "error": {"kind": "NotAuthenticated", "message": "Authentication required"}}

    def test_project_manager_cannot_issue_from_central(self, project_manager, central_store, project_store, product, purchase, balance):
        purchase(central_store, product, 10, "1.00")
        result = facade.record_issue(project_manager, {
            "from_store_id": central_store.id, "to_store_id": project_store.id,
            "product_id": product.id, "quantity": "5",
        })
        assert result["error"]["kind"] == "Unauthorized"
        assert balance(central_store, product) == 10

    def test_insufficient_stock_envelope(self, central_manager, central_store, project_store, product, purchase):
        purchase(central_store, product, 60, "10.00")
        result = facade.record_issue(central_manager, {
            "from_store_id": central_store.id, "to_store_id": project_store.id,
            "product_id": product.id, "quantity": "1000",
        })
        assert result["data"] is None
        assert result["error"]["kind"] == "InsufficientStockError"
        assert result["error"]["available"] == "60.00"
        assert result["error"]["unit"] == "bags"

    def test_missing_store_is_not_found(self, admin, product, db_session):
        result = facade.record_purchase(admin, {
            "store_id": 999, "product_id": product.id, "quantity": "1", "unit_cost": "1",
        })
        assert result["error"]["kind"] == "NotFound"

    def test_deletes_are_admin_only(self, central_manager, central_store, product, purchase):
        p = purchase(central_store, product, 5, "1.00")
        result = facade.delete_purchase(central_manager, p.id)
        assert result["error"]["kind"] == "Unauthorized"

    def test_project_manager_sees_central_and_own_store(
        self, project_manager, central_store, project_store, other_project_store
    ):
        result = facade.list_stores(project_manager)
        assert {s["id"] for s in result["data"]} == {central_store.id, project_store.id}

        hidden = facade.get_store(project_manager, other_project_store.id)
        assert hidden["error"]["kind"] == "Unauthorized"

    def test_average_cost_visibility(self, central_manager, project_manager, central_store, project_store, product, purchase, issue):
        purchase(central_store, product, 100, "10.00")
        issue(central_store, product, 40, to_store=project_store)

        ok = facade.get_average_cost(central_manager, central_store.id, product.id)
        assert ok == {"data": "10.00", "error": None}

        assert facade.get_average_cost(central_manager, project_store.id, product.id)["error"]["kind"] == "Unauthorized"
        assert facade.get_average_cost(project_manager, project_store.id, product.id)["error"]["kind"] == "Unauthorized"

    def test_balances_redact_costs(self, admin, project_manager, central_store, project_store, product, purchase, issue):
        purchase(central_store, product, 100, "10.00")
        issue(central_store, product, 40, to_store=project_store)

        rows = facade.list_balances(project_manager)["data"]
        assert {r["store_id"] for r in rows} == {central_store.id, project_store.id}
        assert all(r["average_cost"] is None and r["total_value"] is None for r in rows)
        assert all(r["quantity"] in ("60.00", "40.00") for r in rows)

        central_row = facade.list_balances(admin, store_id=central_store.id)["data"][0]
        assert central_row["average_cost"] == "10.00"
        assert central_row["total_value"] == "600.00"

    def test_inventory_report_redaction(self, central_manager, central_store, project_store, product, purchase, issue):
        purchase(central_store, product, 100, "10.00")
        issue(central_store, product, 40, to_store=project_store)

        report = facade.period_report(central_manager, "inventory", "lifetime")
        assert report["error"] is None
        assert report["summary"]["costs_redacted"] is True
        assert report["summary"]["total_value"] == "600.00"
        assert report["summary"]["period"] == "lifetime"

    def test_project_manager_reports_default_to_own_store(
        self, project_manager, central_store, project_store, product, purchase, issue
    ):
        purchase(central_store, product, 100, "10.00")
        issue(central_store, product, 40, to_store=project_store)
        issue(project_store, product, 5, issued_to_name="Foreman")

        purchases = facade.period_report(project_manager, "purchases", "lifetime")
        assert purchases["data"] == []
        assert purchases["summary"]["total_purchases"] == 0

        issues = facade.period_report(project_manager, "issues", "lifetime")
        assert issues["summary"]["total_issues"] == 2

    def test_issueable_stores(self, central_manager, project_manager, central_store, project_store, other_project_store):
        for_central = facade.issueable_stores(central_manager)["data"]
        assert [s["id"] for s in for_central["from_stores"]] == [central_store.id]
        assert {s["id"] for s in for_central["to_stores"]} == {project_store.id, other_project_store.id}

        for_site = facade.issueable_stores(project_manager)["data"]
        assert [s["id"] for s in for_site["from_stores"]] == [project_store.id]
        assert [s["id"] for s in for_site["to_stores"]] == [central_store.id]
