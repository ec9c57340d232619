# Overview: Registry operations for categories and products, including bulk import.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..decimal_utils import ZERO
from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import Category, InventoryBalance, Product
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "name", "unit", "description", "restock_level"},
    required_on_create={"category_id", "name", "unit"},
)

PRODUCT_MUTABLE_FIELDS = {"category_id", "name", "unit", "description", "restock_level"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


# -- Categories --

def _category_matches(name: str):
    return Category.query.filter(func.lower(Category.name) == name.lower())


def get_category(category_id: int, *, include_deleted: bool = False) -> Category:
    category = db.session.get(Category, category_id)
    if category is None or (category.deleted_at is not None and not include_deleted):
        raise NotFound("Category not found")
    return category


def list_categories(*, include_deleted: bool = False) -> list[Category]:
    q = Category.query
    if not include_deleted:
        q = q.filter(Category.deleted_at.is_(None))
    return q.order_by(Category.name.asc()).all()


def create_category(payload: dict, *, actor_id: str | None = None) -> Category:
    """Create a category, or reinstate a soft-deleted one with the same name."""
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)

    def _op():
        matches = _category_matches(patch["name"]).all()
        if any(c.deleted_at is None for c in matches):
            raise ConflictError(f"A category named '{patch['name']}' already exists")

        if matches:
            category = matches[0]
            category.deleted_at = None
            category.name = patch["name"]
            category.description = patch.get("description")
            event_type = "CATEGORY_REINSTATED"
        else:
            category = Category(**patch)
            db.session.add(category)
            db.session.flush()
            event_type = "CATEGORY_CREATED"

        append_audit_event(
            event_type=event_type,
            entity_type="category",
            entity_id=category.id,
            actor_id=actor_id,
            note=category.name,
        )
        db.session.commit()
        return category

    return run_with_retry(_op)


def update_category(category_id: int, payload: dict, *, actor_id: str | None = None) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    def _op():
        category = lock_for_update(Category.query.filter_by(id=category_id)).first()
        if category is None or category.deleted_at is not None:
            raise NotFound("Category not found")

        if "name" in patch:
            clash = (
                _category_matches(patch["name"])
                .filter(Category.deleted_at.is_(None), Category.id != category.id)
                .first()
            )
            if clash is not None:
                raise ConflictError(f"A category named '{patch['name']}' already exists")

        for k, v in patch.items():
            setattr(category, k, v)

        append_audit_event(
            event_type="CATEGORY_UPDATED",
            entity_type="category",
            entity_id=category.id,
            actor_id=actor_id,
        )
        db.session.commit()
        return category

    return run_with_retry(_op)


def soft_delete_category(category_id: int, *, actor_id: str | None = None) -> Category:
    def _op():
        category = lock_for_update(Category.query.filter_by(id=category_id)).first()
        if category is None:
            raise NotFound("Category not found")
        if category.deleted_at is not None:
            return category

        in_use = Product.query.filter_by(category_id=category.id).filter(Product.deleted_at.is_(None)).count()
        if in_use:
            raise ConflictError(f"Cannot delete category: {in_use} active product(s) still use it")

        category.deleted_at = utcnow()
        append_audit_event(
            event_type="CATEGORY_DELETED",
            entity_type="category",
            entity_id=category.id,
            actor_id=actor_id,
        )
        db.session.commit()
        return category

    return run_with_retry(_op)


# -- Products --

def _product_matches(category_id: int, name: str):
    return Product.query.filter(
        Product.category_id == category_id,
        func.lower(Product.name) == name.lower(),
    )


def _reinstate_or_create(patch: dict, *, actor_id: str | None) -> tuple[Product, bool]:
    """
    Insert a product or bring back a soft-deleted one with the same (category, name).

    Returns (product, reinstated). Runs inside the caller's transaction.
    """
    category = db.session.get(Category, patch["category_id"])
    if category is None or category.deleted_at is not None:
        raise NotFound("Category not found")

    matches = _product_matches(patch["category_id"], patch["name"]).all()
    if any(p.deleted_at is None for p in matches):
        raise ConflictError(f"A product named '{patch['name']}' already exists in this category")

    if matches:
        product = matches[0]
        product.deleted_at = None
        product.description = None
        product.restock_level = ZERO
        apply_product_patch(product, patch)
        reinstated = True
    else:
        product = Product(**patch)
        db.session.add(product)
        reinstated = False
    db.session.flush()

    append_audit_event(
        event_type="PRODUCT_REINSTATED" if reinstated else "PRODUCT_CREATED",
        entity_type="product",
        entity_id=product.id,
        actor_id=actor_id,
        note=product.name,
    )
    return product, reinstated


def create_product(payload: dict, *, actor_id: str | None = None) -> Product:
    """
    Create a product, reinstating a soft-deleted match instead of inserting a duplicate.

    Name matching is case-insensitive within the category. An active match is a
    ConflictError.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        product, _ = _reinstate_or_create(patch, actor_id=actor_id)
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int, *, include_deleted: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (product.deleted_at is not None and not include_deleted):
        raise NotFound("Product not found")
    return product


def list_products(*, category_id: int | None = None, include_deleted: bool = False) -> list[Product]:
    q = Product.query
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if not include_deleted:
        q = q.filter(Product.deleted_at.is_(None))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def update_product(product_id: int, payload: dict, *, actor_id: str | None = None) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = lock_for_update(Product.query.filter_by(id=product_id)).first()
        if product is None or product.deleted_at is not None:
            raise NotFound("Product not found")

        category_id = patch.get("category_id", product.category_id)
        name = patch.get("name", product.name)
        if "category_id" in patch:
            category = db.session.get(Category, category_id)
            if category is None or category.deleted_at is not None:
                raise NotFound("Category not found")
        if "category_id" in patch or "name" in patch:
            clash = (
                _product_matches(category_id, name)
                .filter(Product.deleted_at.is_(None), Product.id != product.id)
                .first()
            )
            if clash is not None:
                raise ConflictError(f"A product named '{name}' already exists in this category")

        apply_product_patch(product, patch)
        append_audit_event(
            event_type="PRODUCT_UPDATED",
            entity_type="product",
            entity_id=product.id,
            actor_id=actor_id,
            payload=patch,
        )
        db.session.commit()
        return product

    return run_with_retry(_op)


def soft_delete_product(product_id: int, *, actor_id: str | None = None) -> Product:
    """Soft-delete a product. Blocked while any store still holds it."""
    def _op():
        product = lock_for_update(Product.query.filter_by(id=product_id)).first()
        if product is None:
            raise NotFound("Product not found")
        if product.deleted_at is not None:
            return product

        stocked = (
            InventoryBalance.query
            .filter(InventoryBalance.product_id == product.id, InventoryBalance.quantity != ZERO)
            .count()
        )
        if stocked:
            raise ConflictError("Cannot delete product while stores still hold stock of it")

        product.deleted_at = utcnow()
        append_audit_event(
            event_type="PRODUCT_DELETED",
            entity_type="product",
            entity_id=product.id,
            actor_id=actor_id,
        )
        db.session.commit()
        return product

    return run_with_retry(_op)


def import_products(rows: list[dict], *, actor_id: str | None = None) -> dict:
    """
    Bulk-create products from already-parsed rows.

    Each row: name, category (matched case-insensitively by name), unit,
    optional description and restock_level. Rows whose product already exists
    in the category are skipped; soft-deleted matches are reinstated.

    Returns {"created", "skipped", "errors": [{"row", "error"}]}. Row numbers
    count the header line, so the first data row is row 2.
    """
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")

    def _op():
        created = 0
        skipped = 0
        errors: list[dict] = []
        categories = {c.name.lower(): c for c in list_categories()}

        for index, row in enumerate(rows):
            row_number = index + 2
            try:
                if not isinstance(row, dict):
                    raise ValidationError("Row must be an object")
                category_name = str(row.get("category") or "").strip()
                if not category_name:
                    raise ValidationError("Missing required fields: category")
                category = categories.get(category_name.lower())
                if category is None:
                    raise ValidationError(f"Category '{category_name}' not found")

                payload = {
                    "category_id": category.id,
                    "name": row.get("name"),
                    "unit": row.get("unit"),
                }
                if row.get("description") not in (None, ""):
                    payload["description"] = row["description"]
                if row.get("restock_level") not in (None, ""):
                    payload["restock_level"] = row["restock_level"]

                patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
                enforce_rules_product(patch)

                if _product_matches(category.id, patch["name"]).filter(Product.deleted_at.is_(None)).first():
                    skipped += 1
                    continue

                _reinstate_or_create(patch, actor_id=actor_id)
                created += 1
            except (ValidationError, ConflictError, NotFound) as exc:
                errors.append({"row": row_number, "error": exc.message})

        db.session.commit()
        logger.info("Product import: %d created, %d skipped, %d errors", created, skipped, len(errors))
        return {"created": created, "skipped": skipped, "errors": errors}

    return run_with_retry(_op)
