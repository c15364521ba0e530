"""
Payment model: one entry of an invoice's append-only payment ledger.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Payment(Base):
    """
    A payment received against an invoice.

    Payments are never edited or removed individually; they disappear only
    when the whole invoice is deleted.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"))

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    method: Mapped[str] = mapped_column(String(50), default="Cash")
    """"Cash", "Card", "Transfer", ... or "Settlement" for automatic settlement of the balance."""

    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    created_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    """User who recorded the payment, if known."""

    invoice = relationship("Invoice", back_populates="payments")
