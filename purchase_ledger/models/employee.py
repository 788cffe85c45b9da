"""
Employee model.

The consumer a purchase is attributed to. Employees are
soft-deleted: a non-null deleted_at hides them from new
purchases while keeping historical purchases intact.
"""

from datetime import datetime

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from purchase_ledger.models.base import Base, utcnow


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    employee_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    monthly_consumption_value: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None, index=True
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Employee {self.employee_number} {self.name}>"
