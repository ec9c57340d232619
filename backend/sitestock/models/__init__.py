from .registry import Project, Store, Category, Product, STORE_TYPES
from .ledger import InventoryBalance, Purchase, Issue, AuditEvent

__all__ = [
    'Project', 'Store', 'Category', 'Product', 'STORE_TYPES',
    'InventoryBalance', 'Purchase', 'Issue', 'AuditEvent',
]
