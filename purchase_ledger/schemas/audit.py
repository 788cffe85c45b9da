"""
Pydantic schemas for the audit trail.

AuditRecordResponse serialises with camelCase aliases. That
shape, {id, userId, action, resource, resourceId, oldValue,
newValue, requestId, timestamp}, is what downstream tooling
reads, so field names must not change.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from purchase_ledger.models.enums import AuditAction
from purchase_ledger.schemas.common import PageMeta


class AuditFilters(BaseModel):
    resource: str | None = Field(default=None, max_length=50)
    resource_id: int | None = None
    user_id: int | None = None
    action: AuditAction | None = None
    request_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class AuditRecordResponse(BaseModel):
    id: int
    user_id: int | None = Field(serialization_alias="userId")
    action: AuditAction
    resource: str
    resource_id: int | None = Field(serialization_alias="resourceId")
    old_value: Any | None = Field(serialization_alias="oldValue")
    new_value: Any | None = Field(serialization_alias="newValue")
    request_id: str = Field(serialization_alias="requestId")
    timestamp: datetime

    model_config = {"from_attributes": True}


class AuditPage(BaseModel):
    data: list[AuditRecordResponse]
    meta: PageMeta
