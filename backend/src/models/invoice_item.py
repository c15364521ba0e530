"""
Invoice line item model.
"""

from decimal import Decimal

from sqlalchemy import String, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class InvoiceItem(Base):
    """One billed line: description, quantity, unit price and line total."""

    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"))

    position: Mapped[int] = mapped_column(Integer, default=0)
    """Display order within the invoice (0-based)."""

    description: Mapped[str] = mapped_column(String(500), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """quantity * unit_price unless explicitly overridden when the item was written."""

    invoice = relationship("Invoice", back_populates="items")
