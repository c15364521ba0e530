"""
Appointment model representing a booked visit.

An appointment carries a snapshot of the patient's identity as given at booking
time, the assigned doctor, its business state (status / payment_status) and the
clinical result recorded by the doctor. Billing lives in the linked invoices;
the derived financial summary lives in the appointment's report.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional
from sqlalchemy import String, ForeignKey, Index, TIMESTAMP, Boolean, Date, Integer, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Appointment(Base):
    """
    Appointment entity representing one visit of a patient to a doctor.

    Invariant: status 'Completed' implies payment_status 'Paid'. The invariant is
    kept by the status harmonizer on every write path, not by the database.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Patient identity snapshot
    first_name: Mapped[str] = mapped_column(String(255), default="")
    last_name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[str] = mapped_column(String(50))
    nic: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    dob: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address: Mapped[str] = mapped_column(String(500))

    # Scheduling
    appointment_date: Mapped[str] = mapped_column(String(64))
    """ISO date or datetime string of the visit."""

    department: Mapped[str] = mapped_column(String(255))
    doctor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    doctor_first_name: Mapped[str] = mapped_column(String(255), default="")
    doctor_last_name: Mapped[str] = mapped_column(String(255), default="")
    has_visited: Mapped[bool] = mapped_column(Boolean, default=False)

    patient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    # Business state
    status: Mapped[str] = mapped_column(String(20), default="Pending")
    """One of 'Pending', 'Accepted', 'Rejected', 'Completed'."""

    payment_status: Mapped[str] = mapped_column(String(20), default="Pending")
    """One of 'Pending', 'Due', 'Accepted' (legacy spelling of paid), 'Paid'."""

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """20% of the doctor's consultation fee at booking time."""

    result: Mapped[List[Any]] = mapped_column(JSON, default=list)
    """
    Visit records saved with prescriptions:

    [
        {
            "initial_complaint": str,
            "medical_history": str,
            "diagnosis": {"bp": str, "diabetes": str, "spo2": str, ...},
            "medicine_advice": [
                {"name": str, "type": str, "dose": str, "frequency": str,
                 "route": str, "duration": str, ...extra keys}
            ],
            "advice": {"types": [...], "custom": [...]}
        }
    ]
    """

    # Audit
    booked_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    booked_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("User", foreign_keys=[patient_id])

    invoices = relationship(
        "Invoice",
        back_populates="appointment",
        order_by="Invoice.id",
        cascade="all",
    )
    """Invoices billed for this appointment, oldest first."""

    @property
    def invoice_ids(self) -> List[int]:
        """Ids of the linked invoices, oldest first."""
        return [invoice.id for invoice in self.invoices]

    @property
    def patient_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def doctor_name(self) -> str:
        return f"{self.doctor_first_name or ''} {self.doctor_last_name or ''}".strip()

    __table_args__ = (
        Index('idx_appointments_patient', 'patient_id'),
        Index('idx_appointments_doctor', 'doctor_id'),
        Index('idx_appointments_status', 'status'),
        Index('idx_appointments_phone', 'phone'),
    )
