"""
Purchase and purchase item API endpoints.

The API layer is thin: it parses and validates input with the
pydantic schemas, builds the actor and request id, and
delegates to PurchaseService. Domain errors are turned into
responses by the exception handler registered in main.py.
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from purchase_ledger.api.deps import (
    get_actor,
    get_audit,
    get_pagination,
    get_request_id,
)
from purchase_ledger.models.base import get_db
from purchase_ledger.schemas.common import Pagination
from purchase_ledger.schemas.purchase import (
    DeletedResponse,
    PurchaseCreate,
    PurchaseFilters,
    PurchaseItemResponse,
    PurchaseItemsAdd,
    PurchaseItemUpdate,
    PurchasePage,
    PurchaseResponse,
)
from purchase_ledger.services.audit_service import AuditDispatcher
from purchase_ledger.services.authorization import Actor
from purchase_ledger.services.purchase_service import PurchaseService

router = APIRouter(tags=["Purchases"])


def get_purchase_service(
    db: Session = Depends(get_db),
    audit: AuditDispatcher = Depends(get_audit),
) -> PurchaseService:
    return PurchaseService(db, audit)


@router.post("/purchases", response_model=PurchaseResponse, status_code=201)
def create_purchase(
    request: PurchaseCreate,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    """Create a purchase with its items in one transaction."""
    return service.create_purchase(request, actor, request_id)


@router.get("/purchases", response_model=PurchasePage)
def list_purchases(
    employee_id: int | None = None,
    closed: bool | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    pagination: Pagination = Depends(get_pagination),
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
):
    """List the purchases the caller may see, newest first."""
    return service.list_purchases(
        PurchaseFilters(
            employee_id=employee_id,
            closed=closed,
            date_from=date_from,
            date_to=date_to,
        ),
        pagination,
        actor,
    )


@router.get("/purchases/{purchase_id}", response_model=PurchaseResponse)
def get_purchase(
    purchase_id: int,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
):
    return service.get_purchase(purchase_id, actor)


@router.delete("/purchases/{purchase_id}", response_model=DeletedResponse)
def delete_purchase(
    purchase_id: int,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    """Delete a purchase and its items (admin or manager)."""
    return service.delete_purchase(purchase_id, actor, request_id)


@router.post(
    "/purchases/{purchase_id}/items",
    response_model=PurchaseResponse,
    status_code=201,
)
def add_items(
    purchase_id: int,
    request: PurchaseItemsAdd,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    return service.add_items(purchase_id, request.items, actor, request_id)


@router.post("/purchases/{purchase_id}/close", response_model=PurchaseResponse)
def close_purchase(
    purchase_id: int,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    """Close a purchase. Closing twice is an error."""
    return service.close_purchase(purchase_id, actor, request_id)


@router.post("/purchases/{purchase_id}/reopen", response_model=PurchaseResponse)
def reopen_purchase(
    purchase_id: int,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    """Reopen a closed purchase (admin only)."""
    return service.reopen_purchase(purchase_id, actor, request_id)


@router.post(
    "/purchases/{purchase_id}/recalculate",
    response_model=PurchaseResponse,
)
def recalculate_total(
    purchase_id: int,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    return service.recalculate_total(purchase_id, actor, request_id)


@router.patch("/purchase-items/{item_id}", response_model=PurchaseItemResponse)
def update_item(
    item_id: int,
    request: PurchaseItemUpdate,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    return service.update_item(item_id, request.quantity, actor, request_id)


@router.delete("/purchase-items/{item_id}", response_model=DeletedResponse)
def remove_item(
    item_id: int,
    service: PurchaseService = Depends(get_purchase_service),
    actor: Actor = Depends(get_actor),
    request_id: str = Depends(get_request_id),
):
    return service.remove_item(item_id, actor, request_id)
