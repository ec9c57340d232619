"""
SiteStock permission policy

Three fixed roles. Capabilities come from two layers:

1) Role -> permission codes (DEFAULT_ROLE_PERMISSIONS)
2) Store scope for the permission's store argument:
   - admin: every store
   - central_store_manager: mutates central stores only; reads every store
   - project_store_manager: mutates its own project store only; reads its own
     project store plus every central store

Registry mutations and all deletions are admin-only. Whether project store
managers may record or edit purchases in their own store is the
PROJECT_STORE_PURCHASES setting ("store_manager" or "admin_only").
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .errors import NotAuthenticated, Unauthorized

ADMIN = "admin"
CENTRAL_STORE_MANAGER = "central_store_manager"
PROJECT_STORE_MANAGER = "project_store_manager"

ROLES = (ADMIN, CENTRAL_STORE_MANAGER, PROJECT_STORE_MANAGER)


# Each permission is defined as: (code, name, description)
PERMISSION_DEFINITIONS = [
    ("VIEW_INVENTORY", "View Inventory", "View stores, products, balances and movement history"),
    ("MANAGE_REGISTRY", "Manage Registry", "Create, edit and delete projects, stores, categories and products"),
    ("RECORD_PURCHASE", "Record Purchase", "Record purchases into a store"),
    ("EDIT_PURCHASE", "Edit Purchase", "Correct quantity, cost or date of an existing purchase"),
    ("DELETE_PURCHASE", "Delete Purchase", "Soft-delete a purchase and reverse its stock"),
    ("RECORD_ISSUE", "Record Issue", "Issue stock out of a store"),
    ("DELETE_ISSUE", "Delete Issue", "Soft-delete an issue and reverse its stock"),
    ("VIEW_REPORTS", "View Reports", "View purchase, issue and inventory period reports"),
]

PERMISSION_CODES = frozenset(p[0] for p in PERMISSION_DEFINITIONS)

# Read-only permissions: scoped by readable stores, never by managed stores
READ_PERMISSIONS = frozenset({"VIEW_INVENTORY", "VIEW_REPORTS"})

# Covered by the PROJECT_STORE_PURCHASES policy on project stores
PURCHASE_PERMISSIONS = frozenset({"RECORD_PURCHASE", "EDIT_PURCHASE"})

DEFAULT_ROLE_PERMISSIONS = {
    ADMIN: PERMISSION_CODES,
    CENTRAL_STORE_MANAGER: frozenset({
        "VIEW_INVENTORY",
        "RECORD_PURCHASE",
        "EDIT_PURCHASE",
        "RECORD_ISSUE",
        "VIEW_REPORTS",
    }),
    PROJECT_STORE_MANAGER: frozenset({
        "VIEW_INVENTORY",
        "RECORD_PURCHASE",
        "EDIT_PURCHASE",
        "RECORD_ISSUE",
        "VIEW_REPORTS",
    }),
}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as established by the upstream auth layer."""
    user_id: str
    role: str
    project_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def _project_purchase_policy() -> str:
    return current_app.config.get("PROJECT_STORE_PURCHASES", "store_manager")


def can_read_store(principal: Principal, store) -> bool:
    if principal.role in (ADMIN, CENTRAL_STORE_MANAGER):
        return True
    if store.type == "central":
        return True
    return principal.project_id is not None and store.project_id == principal.project_id


def can_manage_store(principal: Principal, store) -> bool:
    """Whether the caller may move stock in/out of this store."""
    if principal.role == ADMIN:
        return True
    if principal.role == CENTRAL_STORE_MANAGER:
        return store.type == "central"
    if principal.role == PROJECT_STORE_MANAGER:
        return (
            store.type == "project"
            and principal.project_id is not None
            and store.project_id == principal.project_id
        )
    return False


def can_view_costs(principal: Principal, store) -> bool:
    """Average cost and value: admins everywhere, central managers on central stores."""
    if principal.role == ADMIN:
        return True
    return principal.role == CENTRAL_STORE_MANAGER and store.type == "central"


def authorize(principal: Principal | None, permission_code: str, store=None) -> None:
    """
    Raise unless principal holds permission_code (for store, when given).

    Returns None on success so callers can use it as a guard statement.
    """
    if principal is None or not principal.user_id:
        raise NotAuthenticated("Authentication required")

    if permission_code not in PERMISSION_CODES:
        raise ValueError(f"Unknown permission code: {permission_code}")

    if principal.role not in ROLES:
        raise Unauthorized(f"Unknown role: {principal.role}")

    if permission_code not in DEFAULT_ROLE_PERMISSIONS[principal.role]:
        raise Unauthorized(f"Permission denied: {permission_code} requires a different role")

    if store is None or principal.role == ADMIN:
        return

    if permission_code in READ_PERMISSIONS:
        if not can_read_store(principal, store):
            raise Unauthorized("You do not have access to this store")
        return

    if not can_manage_store(principal, store):
        raise Unauthorized("You do not have permission to manage this store")

    if (
        permission_code in PURCHASE_PERMISSIONS
        and store.type == "project"
        and _project_purchase_policy() == "admin_only"
    ):
        raise Unauthorized("Only admins can record or edit purchases for project stores")
