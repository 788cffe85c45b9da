"""
Pydantic schemas for purchases and purchase items.

Request schemas are the validated input the services accept.
Any total sent by a client is accepted and ignored: totals
are always recomputed from the items.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from purchase_ledger.schemas.common import PageMeta


# --- Request Schemas ---

class PurchaseItemInput(BaseModel):
    """One line to add to a purchase."""
    product_id: int
    quantity: int = Field(default=1, ge=1)


class PurchaseCreate(BaseModel):
    employee_id: int
    date: datetime | None = None
    user_id: int | None = None
    # Ignored; kept so clients sending a total are not rejected
    total: Decimal | None = None
    items: list[PurchaseItemInput] = Field(default_factory=list)


class PurchaseItemsAdd(BaseModel):
    items: list[PurchaseItemInput] = Field(min_length=1)


class PurchaseItemUpdate(BaseModel):
    quantity: int = Field(ge=1)


class PurchaseFilters(BaseModel):
    employee_id: int | None = None
    closed: bool | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


# --- Response Schemas ---

class PurchaseItemResponse(BaseModel):
    id: int
    purchase_id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    model_config = {"from_attributes": True}


class PurchaseResponse(BaseModel):
    id: int
    employee_id: int
    user_id: int | None
    date: datetime
    total: Decimal
    closed: bool
    items: list[PurchaseItemResponse]

    model_config = {"from_attributes": True}


class PurchaseSummaryResponse(BaseModel):
    """List rows carry no items."""
    id: int
    employee_id: int
    user_id: int | None
    date: datetime
    total: Decimal
    closed: bool

    model_config = {"from_attributes": True}


class PurchasePage(BaseModel):
    data: list[PurchaseSummaryResponse]
    meta: PageMeta


class DeletedResponse(BaseModel):
    deleted: bool
    id: int
