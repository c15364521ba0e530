"""
Report model: denormalized per-appointment financial summary.

A report is a projection, never a source of truth. It can be recomputed from the
appointment and its invoices at any time (see ReportService.sync_report).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Report(Base):
    """Financial summary of one appointment: amount billed, paid and due."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id"), unique=True)
    doctor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    patient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    appointment_date: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """Invoice total(s), or the appointment price when no invoice exists."""

    paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    due: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    status: Mapped[str] = mapped_column(String(20), default="Due")
    """One of 'Due', 'Paid', 'Partial', 'Adjusted'."""

    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    """How the figures were derived."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    appointment = relationship("Appointment")

    __table_args__ = (
        Index('idx_reports_doctor', 'doctor_id'),
        Index('idx_reports_status', 'status'),
    )
