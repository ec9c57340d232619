from __future__ import annotations

from ..decimal_utils import fmt
from ..extensions import db
from ..time_utils import to_utc_z, utcnow

STORE_TYPES = ("central", "project")


class Project(db.Model):
    """
    Construction project.

    Every project owns exactly one project store, created together with the
    project (see store_service.create_project).
    """
    __tablename__ = "projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Store(db.Model):
    """
    Central or project store.

    - type="central": project_id is NULL
    - type="project": project_id points at the owning project (one active store per project)
    Soft-deleted stores (deleted_at set) drop out of every active query.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.CheckConstraint("type IN ('central', 'project')", name="ck_stores_type"),
        db.CheckConstraint(
            "(type = 'central' AND project_id IS NULL) OR (type = 'project' AND project_id IS NOT NULL)",
            name="ck_stores_project_link",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    project = db.relationship("Project", backref=db.backref("stores", lazy=True))

    @property
    def is_central(self) -> bool:
        return self.type == "central"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "project_id": self.project_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Product(db.Model):
    """
    Catalog item shared by all stores.

    (category_id, lower(name)) is unique among non-deleted products. Re-creating
    a product that matches a soft-deleted row reinstates that row, so history
    recorded against the old id stays attached.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category_id", "name"),
        db.CheckConstraint("restock_level >= 0", name="ck_products_restock_level"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)
    restock_level = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} unit={self.unit}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "name": self.name,
            "unit": self.unit,
            "description": self.description,
            "restock_level": fmt(self.restock_level),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
