from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .decimal_utils import to_decimal
from .errors import ConflictError, ValidationError
from .time_utils import parse_business_date, parse_iso_datetime

__all__ = [
    "ConflictError",
    "ValidationError",
    "ModelValidationPolicy",
    "validate_payload",
    "enforce_rules_product",
    "enforce_rules_purchase",
    "enforce_rules_issue",
]

# Unit vocabulary accepted for products
PRODUCT_UNITS = (
    "kg", "g", "tons", "pcs", "units", "nos", "coil",
    "m", "cm", "km", "l", "ml", "sqm", "sqft",
    "boxes", "bags", "bundles", "other",
    "length", "width", "height", "diameter", "radius", "area", "volume", "weight",
)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Quantities and money: Decimal with 2 places
    if isinstance(coltype, Numeric):
        return to_decimal(value, col.key)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Business dates (YYYY-MM-DD)
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                parsed = parse_business_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
            if parsed is None:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
            return parsed
        raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)):
            if val == "":
                if not col.nullable:
                    raise ValidationError(f"{k} cannot be blank")
                val = None
            elif col.type.length and len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "unit" in patch and patch["unit"] is not None:
        unit = patch["unit"].lower()
        if unit not in PRODUCT_UNITS:
            raise ValidationError(f"Invalid unit: {patch['unit']}")
        patch["unit"] = unit

    if "restock_level" in patch and patch["restock_level"] is not None:
        if patch["restock_level"] < 0:
            raise ValidationError("restock_level must be >= 0")


def enforce_rules_purchase(patch: dict) -> None:
    # PURCHASE requires qty > 0 and unit_cost >= 0
    if "quantity" in patch:
        if patch["quantity"] is None or patch["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    if "unit_cost" in patch:
        if patch["unit_cost"] is None:
            raise ValidationError("unit_cost is required")
        if patch["unit_cost"] < 0:
            raise ValidationError("unit_cost must be >= 0")


def enforce_rules_issue(patch: dict) -> None:
    # ISSUE requires qty > 0; unit cost is never client-supplied (snapshot is computed)
    if "quantity" not in patch or patch["quantity"] is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")

    to_store_id = patch.get("to_store_id")
    if to_store_id is not None and to_store_id == patch.get("from_store_id"):
        raise ValidationError("Cannot issue to the same store")
