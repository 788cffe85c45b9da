"""
Purchase item model.

One line of a purchase. unit_price is copied from the product
when the line is written; total_price = quantity * unit_price.
"""

from decimal import Decimal

from sqlalchemy import Integer, Numeric, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from purchase_ledger.models.base import Base


class PurchaseItem(Base):
    __tablename__ = "purchase_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_purchase_items_quantity_min"),
        Index("idx_purchase_items_purchase_product", "purchase_id", "product_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    purchase_id: Mapped[int] = mapped_column(
        ForeignKey("purchases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    purchase: Mapped["Purchase"] = relationship(back_populates="items")

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "total_price": str(self.total_price),
        }

    def __repr__(self) -> str:
        return (
            f"<PurchaseItem {self.id} product={self.product_id} "
            f"{self.quantity} x {self.unit_price}>"
        )
