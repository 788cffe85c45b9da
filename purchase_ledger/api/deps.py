"""
Request-scoped dependencies.

Authentication happens upstream. By the time a request gets
here, the gateway has verified the caller and forwarded their
id and role in X-User-Id / X-User-Role. The request id comes
from the request-id middleware in main.py.
"""

from fastapi import Header, HTTPException, Query, Request

from purchase_ledger.config import get_settings
from purchase_ledger.models.enums import Role
from purchase_ledger.schemas.common import Pagination
from purchase_ledger.services.audit_service import (
    AuditDispatcher,
    get_audit_dispatcher,
)
from purchase_ledger.services.authorization import Actor

REQUEST_ID_HEADER = "X-Request-ID"


def get_actor(
    x_user_id: int | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Actor:
    if x_user_id is None or x_user_role is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        role = Role(x_user_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Actor(id=x_user_id, role=role)


def get_request_id(request: Request) -> str:
    return request.state.request_id


def get_audit() -> AuditDispatcher:
    return get_audit_dispatcher()


def get_pagination(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
) -> Pagination:
    """Oversized limits are capped rather than rejected."""
    if limit is None:
        return Pagination(page=page)
    return Pagination(page=page, limit=min(limit, get_settings().MAX_PAGE_SIZE))
