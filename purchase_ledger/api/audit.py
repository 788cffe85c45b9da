"""
Audit trail API endpoints (admin only).
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from purchase_ledger.api.deps import get_actor, get_pagination
from purchase_ledger.models.base import get_db
from purchase_ledger.models.enums import AuditAction
from purchase_ledger.schemas.audit import AuditFilters, AuditPage, AuditRecordResponse
from purchase_ledger.schemas.common import Pagination
from purchase_ledger.services.audit_service import AuditService
from purchase_ledger.services.authorization import Actor

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=AuditPage)
def list_audit_records(
    resource: str | None = None,
    resource_id: int | None = None,
    user_id: int | None = None,
    action: AuditAction | None = None,
    request_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """
    Page through audit records, newest first.

    Filter by request_id to see everything that happened
    while one request was being handled.
    """
    return AuditService(db).list_audit_records(
        AuditFilters(
            resource=resource,
            resource_id=resource_id,
            user_id=user_id,
            action=action,
            request_id=request_id,
            date_from=date_from,
            date_to=date_to,
        ),
        pagination,
        actor,
    )


@router.get(
    "/resource/{resource}/{resource_id}",
    response_model=list[AuditRecordResponse],
)
def get_resource_history(
    resource: str,
    resource_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Change history of a single resource."""
    return AuditService(db).get_resource_history(resource, resource_id, actor)
