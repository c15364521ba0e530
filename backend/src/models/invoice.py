"""
Invoice model representing a billing document for a patient.

Invoices are usually generated when an appointment is booked, but can also be
created directly from the dashboard. Subtotal and total are derived from the
line items, tax and discount on every write; the payment status is derived from
the payment ledger unless explicitly overridden (e.g. to cancel).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Invoice(Base):
    """
    Invoice entity with ordered line items and an append-only payment ledger.

    Key features:
    - Derived totals: total = max(0, subtotal + tax - discount)
    - Derived status: Unpaid / Partial / Paid from cumulative payments
    - Optional link to the appointment it bills
    """

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the invoice."""

    invoice_number: Mapped[str] = mapped_column(String(64), unique=True)
    """Human-facing invoice number (e.g. "INV-20240305143000-12")."""

    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id"), nullable=True
    )
    """Appointment this invoice bills, if any."""

    patient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    doctor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """Sum of line item totals."""

    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """Amount charged: max(0, subtotal + tax - discount)."""

    status: Mapped[str] = mapped_column(String(20), default="Unpaid")
    """One of 'Unpaid', 'Partial', 'Paid', 'Cancelled'."""

    issued_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    due_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointment = relationship("Appointment", back_populates="invoices")
    patient = relationship("User", foreign_keys=[patient_id])
    doctor = relationship("User", foreign_keys=[doctor_id])

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
    )
    """Line items in display order."""

    payments = relationship(
        "Payment",
        back_populates="invoice",
        order_by="Payment.id",
        cascade="all, delete-orphan",
    )
    """Payment ledger in the order payments were recorded."""

    @property
    def paid_amount(self) -> Decimal:
        """Sum of all recorded payments."""
        return sum((payment.amount for payment in self.payments), Decimal("0.00"))

    @property
    def due_amount(self) -> Decimal:
        """Outstanding balance, never negative."""
        due = (self.total or Decimal("0.00")) - self.paid_amount
        return due if due > 0 else Decimal("0.00")

    __table_args__ = (
        Index('idx_invoices_appointment', 'appointment_id'),
        Index('idx_invoices_patient', 'patient_id'),
        Index('idx_invoices_doctor', 'doctor_id'),
        Index('idx_invoices_status', 'status'),
        Index('idx_invoices_issued_at', 'issued_at'),
    )
