"""Business logic services."""

from purchase_ledger.services.authorization import Actor
from purchase_ledger.services.audit_service import (
    AuditDispatcher,
    AuditService,
    AuditSink,
)
from purchase_ledger.services.purchase_service import PurchaseService

__all__ = [
    "Actor",
    "AuditDispatcher",
    "AuditService",
    "AuditSink",
    "PurchaseService",
]
