from __future__ import annotations

from ..decimal_utils import fmt
from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class InventoryBalance(db.Model):
    """
    Materialized stock level for one (store, product).

    Only the ledger engine writes this row. version_id turns every UPDATE into a
    compare-and-swap: a writer holding a stale copy gets StaleDataError and the
    whole ledger operation is retried against fresh state.
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_id", name="uq_inventory_balances_store_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_balances_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    store = db.relationship("Store")
    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryBalance store_id={self.store_id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "store_id": self.store_id,
            "product_id": self.product_id,
            "quantity": fmt(self.quantity),
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class Purchase(db.Model):
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_store_product", "store_id", "product_id"),
        db.CheckConstraint("quantity > 0", name="ck_purchases_quantity"),
        db.CheckConstraint("unit_cost >= 0", name="ck_purchases_unit_cost"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False)

    purchase_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Idempotency key supplied by the client for safe resubmission
    client_request_id = db.Column(db.String(64), nullable=True, unique=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    store = db.relationship("Store")
    product = db.relationship("Product")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} store_id={self.store_id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": fmt(self.quantity),
            "unit_cost": fmt(self.unit_cost),
            "total_cost": fmt(self.total_cost),
            "purchase_date": to_iso_date(self.purchase_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "client_request_id": self.client_request_id,
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by": self.deleted_by,
        }


class Issue(db.Model):
    """
    Stock leaving a store, either to another store or to a named individual.

    unit_cost/total_cost are a snapshot of the source store's average cost at
    the time of issue; later purchases never rewrite them.
    """
    __tablename__ = "issues"
    __table_args__ = (
        db.Index("ix_issues_from_product", "from_store_id", "product_id"),
        db.Index("ix_issues_to_product", "to_store_id", "product_id"),
        db.CheckConstraint("quantity > 0", name="ck_issues_quantity"),
        db.CheckConstraint(
            "to_store_id IS NULL OR to_store_id <> from_store_id",
            name="ck_issues_distinct_stores",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    issued_to_name = db.Column(db.String(255), nullable=True)

    unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    issue_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    client_request_id = db.Column(db.String(64), nullable=True, unique=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    from_store = db.relationship("Store", foreign_keys=[from_store_id])
    to_store = db.relationship("Store", foreign_keys=[to_store_id])
    product = db.relationship("Product")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Issue id={self.id} from={self.from_store_id} to={self.to_store_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_store_id": self.from_store_id,
            "from_store_name": self.from_store.name if self.from_store else None,
            "to_store_id": self.to_store_id,
            "to_store_name": self.to_store.name if self.to_store else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": fmt(self.quantity),
            "issued_to_name": self.issued_to_name,
            "unit_cost": fmt(self.unit_cost),
            "total_cost": fmt(self.total_cost),
            "issue_date": to_iso_date(self.issue_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "client_request_id": self.client_request_id,
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by": self.deleted_by,
        }


class AuditEvent(db.Model):
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_store_occurred", "store_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # NULL for catalog events that are not tied to a store
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., PURCHASE_RECORDED, ISSUE_REVERSED
    entity_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., purchase, issue, store
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_id = db.Column(db.String(64), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
