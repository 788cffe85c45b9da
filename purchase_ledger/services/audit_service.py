"""
Audit service: captures and queries the audit trail.

Three pieces:

1. AuditSink writes one AuditLog row in its own session. It
   never raises: a failed audit write is logged and dropped,
   because the business mutation it describes has already
   committed and must stand.
2. AuditDispatcher hands events to the sink after commit. In
   "async" mode a single worker thread drains a bounded FIFO
   queue, so records are written in the order they were
   dispatched. In "inline" mode the
   sink runs on the caller's thread.
3. AuditService answers admin queries over the trail.

Services never write AuditLog rows inside their own business
transaction. A rolled-back mutation therefore leaves no record.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any

from sqlalchemy import select, func
from sqlalchemy.orm import Session, sessionmaker

from purchase_ledger.config import get_settings
from purchase_ledger.exceptions import ValidationError
from purchase_ledger.models.audit_log import AuditLog
from purchase_ledger.models.base import SessionLocal, utcnow
from purchase_ledger.models.enums import AuditAction, Role
from purchase_ledger.schemas.audit import AuditFilters
from purchase_ledger.schemas.common import Pagination, PageMeta
from purchase_ledger.services.authorization import Actor, require_role

logger = logging.getLogger(__name__)


# Keys whose values never reach the audit trail
SENSITIVE_FIELDS = frozenset({
    "password",
    "refresh_token",
    "password_reset_token",
    "password_reset_expires",
    "access_token",
    "token",
    "secret",
    "api_key",
    "private_key",
})

REDACTED = "[REDACTED]"

REQUEST_ID_MAX_LENGTH = 36


def sanitize(value: Any) -> Any:
    """Return a copy of ``value`` with sensitive keys redacted, recursively."""
    if isinstance(value, dict):
        return {
            key: REDACTED if key in SENSITIVE_FIELDS else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    return value


def validate_request_id(request_id: str) -> str:
    """
    Check the correlation id before any work starts.

    Every audit record must carry one, so a missing id is a
    caller error, not something to discover after commit.
    """
    if not isinstance(request_id, str) or not request_id.strip():
        raise ValidationError("request_id is required", field="request_id")
    if len(request_id) > REQUEST_ID_MAX_LENGTH:
        raise ValidationError(
            f"request_id must be at most {REQUEST_ID_MAX_LENGTH} characters",
            field="request_id",
        )
    return request_id


@dataclass(frozen=True)
class AuditEvent:
    """
    One audit record waiting to be written.

    The timestamp is taken when the event is created (right
    after commit), not when the worker gets round to it.
    """
    action: AuditAction
    resource: str
    request_id: str
    user_id: int | None = None
    resource_id: int | None = None
    old_value: Any = None
    new_value: Any = None
    timestamp: datetime = field(default_factory=utcnow)


class AuditSink:
    """Persists audit events, one short transaction per record."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def write(self, event: AuditEvent) -> AuditLog | None:
        """
        Write ``event`` and return the stored row.

        Returns None when the write failed. The failure is
        logged with enough context to replay it by hand.
        """
        session = self.session_factory()
        try:
            record = AuditLog(
                user_id=event.user_id,
                action=event.action,
                resource=event.resource,
                resource_id=event.resource_id,
                old_value=sanitize(event.old_value),
                new_value=sanitize(event.new_value),
                request_id=event.request_id,
                timestamp=event.timestamp,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            logger.debug(
                "Audit log %s created: %s %s#%s (request %s)",
                record.id, event.action.value, event.resource,
                event.resource_id, event.request_id,
            )
            return record
        except Exception:
            session.rollback()
            logger.exception(
                "Failed to create audit log: %s %s#%s user=%s (request %s)",
                event.action.value, event.resource, event.resource_id,
                event.user_id, event.request_id,
            )
            return None
        finally:
            session.close()


_STOP = object()


class AuditDispatcher:
    """
    Delivers audit events to the sink after commit.

    The queue is bounded: when it is full, dispatch() blocks
    until the worker catches up. Events are written in the order
    dispatch() was called and are never dropped on the way to the
    sink.

    Dispatch order is commit order for one caller. Services
    dispatch right after commit, once the row lock is released, so
    two requests committing on the same purchase a moment apart
    can still enqueue in either order.
    """

    def __init__(
        self,
        sink: AuditSink,
        mode: str = "async",
        queue_size: int = 1000,
    ):
        if mode not in ("async", "inline"):
            raise ValueError(f"Unknown audit mode '{mode}'")
        self.sink = sink
        self.mode = mode
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stopped = False

    def dispatch(self, event: AuditEvent) -> None:
        """
        Hand ``event`` to the worker, or write it inline.

        The stopped check and the enqueue happen under one lock,
        so shutdown() cannot slip its stop marker in between and
        strand the event behind it.
        """
        if self.mode == "inline":
            self.sink.write(event)
            return
        with self._lock:
            if not self._stopped:
                self._start_worker()
                self._queue.put(event)
                return
        self.sink.write(event)

    def drain(self) -> None:
        """Block until every queued event has been written."""
        if self._worker is not None:
            self._queue.join()

    def shutdown(self) -> None:
        """
        Drain the queue and stop the worker.

        Events dispatched afterwards are written inline.
        """
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            worker = self._worker
        if worker is not None:
            self._queue.put(_STOP)
            worker.join()
            logger.info("Audit dispatcher stopped")

    def _start_worker(self) -> None:
        # Caller holds self._lock
        if self._worker is None:
            self._worker = threading.Thread(
                target=self._run, name="audit-dispatcher", daemon=True
            )
            self._worker.start()

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is _STOP:
                    return
                self.sink.write(event)
            finally:
                self._queue.task_done()


@lru_cache()
def get_audit_dispatcher() -> AuditDispatcher:
    """Process-wide dispatcher built from settings."""
    settings = get_settings()
    return AuditDispatcher(
        AuditSink(SessionLocal),
        mode=settings.AUDIT_MODE,
        queue_size=settings.AUDIT_QUEUE_SIZE,
    )


def log_auth_event(
    dispatcher: AuditDispatcher,
    action: AuditAction,
    request_id: str,
    user_id: int | None = None,
    email: str | None = None,
    metadata: dict | None = None,
) -> None:
    """
    Record a login, logout, failed login or password reset.

    Called by the auth layer. Failed logins usually have no
    user id, so the email is kept in new_value instead.
    """
    dispatcher.dispatch(AuditEvent(
        action=action,
        resource="auth",
        request_id=validate_request_id(request_id),
        user_id=user_id,
        resource_id=user_id,
        new_value={"email": email, **(metadata or {})},
    ))


class AuditService:
    """Read side of the audit trail. Admin only."""

    def __init__(self, db: Session):
        self.db = db

    def list_audit_records(
        self,
        filters: AuditFilters,
        pagination: Pagination,
        actor: Actor,
    ) -> dict:
        """Page through audit records, newest first."""
        require_role(actor, Role.ADMIN)

        query = select(AuditLog)
        if filters.user_id is not None:
            query = query.where(AuditLog.user_id == filters.user_id)
        if filters.action is not None:
            query = query.where(AuditLog.action == filters.action)
        if filters.resource:
            query = query.where(AuditLog.resource == filters.resource)
        if filters.resource_id is not None:
            query = query.where(AuditLog.resource_id == filters.resource_id)
        if filters.request_id:
            query = query.where(AuditLog.request_id == filters.request_id)
        if filters.date_from is not None:
            query = query.where(AuditLog.timestamp >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(AuditLog.timestamp <= filters.date_to)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        records = self.db.execute(
            query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        ).scalars().all()

        return {
            "data": list(records),
            "meta": PageMeta.build(pagination, total, len(records)),
        }

    def get_resource_history(
        self, resource: str, resource_id: int, actor: Actor, limit: int = 50
    ) -> list[AuditLog]:
        """Change history of one resource, newest first."""
        require_role(actor, Role.ADMIN)
        records = self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.resource == resource,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(limit)
        ).scalars().all()
        return list(records)

    def get_user_activity(
        self, user_id: int, actor: Actor, limit: int = 100
    ) -> list[AuditLog]:
        """Everything one user did, newest first."""
        require_role(actor, Role.ADMIN)
        records = self.db.execute(
            select(AuditLog)
            .where(AuditLog.user_id == user_id)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(limit)
        ).scalars().all()
        return list(records)

    def get_failed_logins(
        self, actor: Actor, since: datetime | None = None, limit: int = 100
    ) -> list[AuditLog]:
        """Failed login attempts for security monitoring."""
        require_role(actor, Role.ADMIN)
        query = select(AuditLog).where(
            AuditLog.action == AuditAction.LOGIN_FAILED
        )
        if since is not None:
            query = query.where(AuditLog.timestamp >= since)
        records = self.db.execute(
            query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(limit)
        ).scalars().all()
        return list(records)
