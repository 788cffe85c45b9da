"""
Product model (the shared catalog).

Item rows copy the product price at the time they are added,
so a later price change never rewrites a historical purchase.
"""

from decimal import Decimal

from sqlalchemy import String, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from purchase_ledger.models.base import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<Product {self.name} {self.price}>"
