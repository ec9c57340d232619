from decimal import Decimal

from sitestock.services import costing_service, inventory_service, store_service


def test_average_cost_is_zero_without_purchases(central_store, product):
    assert costing_service.average_cost(central_store.id, product.id) == Decimal("0")
    assert costing_service.inventory_value(central_store.id, product.id) == Decimal("0")


def test_average_cost_is_quantity_weighted(central_store, product, purchase):
    purchase(central_store, product, 100, "5.00")
    purchase(central_store, product, 50, "6.00")

    # 800.00 / 150 = 5.333...
    assert costing_service.average_cost(central_store.id, product.id) == Decimal("5.33")


def test_average_cost_does_not_depend_on_purchase_order(central_store, product, purchase):
    annex = store_service.create_store("Annex Yard", "central")
    lots = [(10, "4.00"), (30, "6.50"), (5, "12.25")]

    for qty, cost in lots:
        purchase(central_store, product, qty, cost)
    for qty, cost in reversed(lots):
        purchase(annex, product, qty, cost)

    # 296.25 / 45 = 6.5833...
    assert costing_service.average_cost(central_store.id, product.id) == Decimal("6.58")
    assert costing_service.average_cost(annex.id, product.id) == Decimal("6.58")


def test_deleted_purchase_no_longer_counts(central_store, product, purchase):
    purchase(central_store, product, 10, "4.00")
    purchase(central_store, product, 30, "6.50")
    expensive = purchase(central_store, product, 5, "12.25")

    inventory_service.delete_purchase(expensive.id)

    # 235.00 / 40 = 5.875, rounded half-up
    assert costing_service.average_cost(central_store.id, product.id) == Decimal("5.88")


def test_issues_do_not_change_average_cost(central_store, project_store, product, purchase, issue):
    purchase(central_store, product, 100, "10.00")
    issue(central_store, product, 40, to_store=project_store)

    assert costing_service.average_cost(central_store.id, product.id) == Decimal("10.00")
    # the receiving store has no purchase history of its own
    assert costing_service.average_cost(project_store.id, product.id) == Decimal("0")


def test_inventory_value_uses_current_balance(central_store, project_store, product, purchase, issue):
    purchase(central_store, product, 100, "10.00")
    issue(central_store, product, 40, to_store=project_store)

    assert costing_service.inventory_value(central_store.id, product.id) == Decimal("600.00")
    assert costing_service.inventory_value(central_store.id, product.id, Decimal("2.5")) == Decimal("25.00")


def test_average_costs_groups_by_store_and_product(central_store, project_store, product, category, purchase):
    from sitestock.services import catalog_service

    rebar = catalog_service.create_product({"category_id": category.id, "name": "Rebar 12mm", "unit": "pcs"})
    purchase(central_store, product, 10, "8.00")
    purchase(central_store, rebar, 4, "2.50")
    purchase(project_store, product, 1, "9.00")

    costs = costing_service.average_costs()
    assert costs == {
        (central_store.id, product.id): Decimal("8.00"),
        (central_store.id, rebar.id): Decimal("2.50"),
        (project_store.id, product.id): Decimal("9.00"),
    }
    assert set(costing_service.average_costs([project_store.id])) == {(project_store.id, product.id)}
