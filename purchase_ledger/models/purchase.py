"""
Purchase model (the aggregate root).

A purchase groups the items one employee consumed. Its total
is never authored by a caller: it is always the sum of the
item line totals and is refreshed by the PurchaseService after
every item mutation.

The lifecycle is OPEN -> CLOSED. A closed purchase is frozen;
the only way back is an explicit, audited reopen.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from purchase_ledger.models.base import Base
from purchase_ledger.models.enums import PurchaseState


# Valid state transitions. CLOSED -> OPEN is the admin reopen.
VALID_TRANSITIONS: dict[PurchaseState, set[PurchaseState]] = {
    PurchaseState.OPEN: {PurchaseState.CLOSED},
    PurchaseState.CLOSED: {PurchaseState.OPEN},
}


class Purchase(Base):
    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id"), nullable=False, index=True
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    total: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    closed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    # Items are always loaded explicitly (selectinload) by the service
    items: Mapped[list["PurchaseItem"]] = relationship(
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.id",
        lazy="raise_on_sql",
    )

    @property
    def state(self) -> PurchaseState:
        return PurchaseState.CLOSED if self.closed else PurchaseState.OPEN

    def can_transition_to(self, new_state: PurchaseState) -> bool:
        """Check if a state transition is valid."""
        return new_state in VALID_TRANSITIONS.get(self.state, set())

    def snapshot(self) -> dict:
        """
        JSON-safe copy of the aggregate for the audit trail.

        Requires items to be loaded already.
        """
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "user_id": self.user_id,
            "date": self.date.isoformat() if self.date else None,
            "total": str(self.total) if self.total is not None else None,
            "closed": self.closed,
            "items": [item.snapshot() for item in self.items],
        }

    def __repr__(self) -> str:
        return (
            f"<Purchase {self.id} employee={self.employee_id} "
            f"{self.total} ({self.state.value})>"
        )
