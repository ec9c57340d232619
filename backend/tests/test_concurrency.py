"""
Concurrent issues against one balance.

Uses a file-backed database so each thread gets its own connection; the
in-memory test database shares a single connection across sessions.
"""
import threading
from decimal import Decimal

import pytest

from sitestock import create_app
from sitestock.config import TestConfig
from sitestock.errors import LedgerError
from sitestock.extensions import db
from sitestock.services import catalog_service, inventory_service, store_service


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'sitestock.sqlite3'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_concurrent_issues_never_overdraw(file_app):
    with file_app.app_context():
        central = store_service.create_store("Central Store", "central")
        project = store_service.create_project("Riverside Tower")
        site = store_service.get_project_store(project.id)
        category = catalog_service.create_category({"name": "Cement"})
        product = catalog_service.create_product({"category_id": category.id, "name": "Cement", "unit": "bags"})
        inventory_service.record_purchase({
            "store_id": central.id, "product_id": product.id, "quantity": "60", "unit_cost": "10.00",
        })
        ids = {"from": central.id, "to": site.id, "product": product.id}

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        with file_app.app_context():
            barrier.wait()
            try:
                inventory_service.record_issue({
                    "from_store_id": ids["from"],
                    "to_store_id": ids["to"],
                    "product_id": ids["product"],
                    "quantity": "40",
                })
                outcome = "ok"
            except LedgerError as exc:
                db.session.rollback()
                outcome = exc.kind
            finally:
                db.session.remove()
            with lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["InsufficientStockError", "ok"]

    with file_app.app_context():
        assert inventory_service.get_balance(ids["from"], ids["product"]) == Decimal("20.00")
        assert inventory_service.get_balance(ids["to"], ids["product"]) == Decimal("40.00")
        assert inventory_service.reconcile()["mismatches"] == []
