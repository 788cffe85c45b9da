"""
Database models package.

All models are imported here so that Base.metadata knows
every table before create_all() is called.
"""

from purchase_ledger.models.base import Base
from purchase_ledger.models.enums import Role, PurchaseState, AuditAction
from purchase_ledger.models.user import User
from purchase_ledger.models.employee import Employee
from purchase_ledger.models.product import Product
from purchase_ledger.models.purchase import Purchase
from purchase_ledger.models.purchase_item import PurchaseItem
from purchase_ledger.models.audit_log import AuditLog

__all__ = [
    "Base",
    "Role",
    "PurchaseState",
    "AuditAction",
    "User",
    "Employee",
    "Product",
    "Purchase",
    "PurchaseItem",
    "AuditLog",
]
