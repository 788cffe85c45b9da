"""
Audit log model.

Records who changed what, when, and during which request.
Rows are append-only: nothing in this package updates or
deletes an audit record. Retention is handled outside.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import String, Integer, DateTime, JSON, ForeignKey, Index, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from purchase_ledger.models.base import Base, utcnow
from purchase_ledger.models.enums import AuditAction


class AuditLog(Base):
    """
    Immutable record of a mutation or an auth event.

    CREATE carries only new_value, DELETE only old_value and
    UPDATE both. request_id ties the record to the inbound
    request that caused it.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index(
            "audit_logs_user_action_timestamp_idx",
            "user_id", "action", "timestamp",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(AuditAction, name="audit_action_enum", create_constraint=True),
        nullable=False,
        index=True,
    )
    resource: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )
    old_value: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    request_id: Mapped[str] = mapped_column(
        String(36), nullable=False, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog {self.action.value} {self.resource}"
            f"#{self.resource_id} req={self.request_id}>"
        )
