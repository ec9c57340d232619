"""
Pytest fixtures for SiteStock backend tests.

Provides test database setup, registry fixtures (stores, products), principals
for each role and a test client.
"""

from decimal import Decimal

import pytest

from sitestock import create_app
from sitestock.config import TestConfig
from sitestock.extensions import db
from sitestock.permissions import Principal
from sitestock.services import catalog_service, inventory_service, store_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def central_store(db_session):
    """Create the main central store."""
    return store_service.create_store("Central Store", "central")


@pytest.fixture(scope='function')
def project(db_session):
    """Create a project (and with it, its project store)."""
    return store_service.create_project("Riverside Tower", location="Block C")


@pytest.fixture(scope='function')
def project_store(project):
    return store_service.get_project_store(project.id)


@pytest.fixture(scope='function')
def other_project_store(db_session):
    other = store_service.create_project("Harbour Bridge")
    return store_service.get_project_store(other.id)


@pytest.fixture(scope='function')
def category(db_session):
    return catalog_service.create_category({"name": "Cement"})


@pytest.fixture(scope='function')
def product(category):
    """Portland cement, counted in bags."""
    return catalog_service.create_product({
        "category_id": category.id,
        "name": "Portland Cement 50kg",
        "unit": "bags",
        "restock_level": "20",
    })


@pytest.fixture(scope='function')
def admin():
    return Principal(user_id="admin-1", role="admin")


@pytest.fixture(scope='function')
def central_manager():
    return Principal(user_id="central-1", role="central_store_manager")


@pytest.fixture(scope='function')
def project_manager(project):
    return Principal(user_id="site-1", role="project_store_manager", project_id=project.id)


@pytest.fixture(scope='function')
def purchase(db_session):
    """Factory: record a purchase with string amounts."""
    def _purchase(store, product, quantity, unit_cost, **extra):
        payload = {
            "store_id": store.id,
            "product_id": product.id,
            "quantity": str(quantity),
            "unit_cost": str(unit_cost),
        }
        payload.update(extra)
        return inventory_service.record_purchase(payload, created_by="test")
    return _purchase


@pytest.fixture(scope='function')
def issue(db_session):
    """Factory: record an issue between stores (or to a person)."""
    def _issue(from_store, product, quantity, to_store=None, **extra):
        payload = {
            "from_store_id": from_store.id,
            "product_id": product.id,
            "quantity": str(quantity),
        }
        if to_store is not None:
            payload["to_store_id"] = to_store.id
        payload.update(extra)
        return inventory_service.record_issue(payload, created_by="test")
    return _issue


@pytest.fixture(scope='function')
def balance(db_session):
    """Read a balance from the database, discarding any state left by a failed operation."""
    def _balance(store, product) -> Decimal:
        db.session.rollback()
        return inventory_service.get_balance(store.id, product.id)
    return _balance


@pytest.fixture(scope='function')
def auth_headers():
    """Factory: request headers the upstream auth layer would forward for a principal."""
    def _headers(principal: Principal) -> dict:
        headers = {"X-User-Id": principal.user_id, "X-User-Role": principal.role}
        if principal.project_id is not None:
            headers["X-Project-Id"] = str(principal.project_id)
        return headers
    return _headers
