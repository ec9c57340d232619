# Overview: Error taxonomy shared by the registry, ledger, costing and reporting services.
"""
SiteStock error kinds (authoritative)

Services raise these; the operation boundary (sitestock.operations) turns them
into {"data": None, "error": {"kind", "message"}} envelopes and the HTTP layer
maps kind -> status code.

- NotAuthenticated        401  no principal on the request
- Unauthorized            403  role/store mismatch
- NotFound                404  store/product/purchase/issue id unresolved
- ValidationError         400  malformed quantity/cost/date, missing field per store-type rule
- InsufficientStockError  409  issue exceeds balance (carries available quantity and unit)
- ConflictError           409  delete blocked by stock, duplicate names, negative reversal
- StorageError            500  underlying transaction/storage failure (opaque)
"""
from __future__ import annotations

from decimal import Decimal


class LedgerError(Exception):
    """Base class for errors that cross the operation boundary as values."""

    kind = "LedgerError"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotAuthenticated(LedgerError):
    kind = "NotAuthenticated"
    http_status = 401


class Unauthorized(LedgerError):
    kind = "Unauthorized"
    http_status = 403


class NotFound(LedgerError):
    kind = "NotFound"
    http_status = 404


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    kind = "ValidationError"
    http_status = 400


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., non-zero stock on delete)."""

    kind = "ConflictError"
    http_status = 409


class InsufficientStockError(LedgerError):
    kind = "InsufficientStockError"
    http_status = 409

    def __init__(self, *, available: Decimal, requested: Decimal, unit: str | None = None):
        unit_label = f" {unit}" if unit else ""
        super().__init__(
            f"Insufficient stock: available {available:.2f}{unit_label}, "
            f"requested {requested:.2f}{unit_label}"
        )
        self.available = available
        self.requested = requested
        self.unit = unit

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["available"] = f"{self.available:.2f}"
        data["unit"] = self.unit
        return data


class StorageError(LedgerError):
    kind = "StorageError"
    http_status = 500
