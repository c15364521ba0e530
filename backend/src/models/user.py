"""
Unified User model for patients and clinic personnel.

Patients, doctors, compounders and admins are stored in a single table and
distinguished by `role`. Doctor-only fields (department, consultation fee) are
null for other roles.
"""

from typing import Optional
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import String, TIMESTAMP, Date, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class User(Base):
    """Account for a patient or a member of clinic staff."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    first_name: Mapped[str] = mapped_column(String(255), default="")
    last_name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    nic: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """National identity card number (13 characters)."""

    dob: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    role: Mapped[str] = mapped_column(String(20))
    """One of 'Admin', 'Doctor', 'Compounder', 'Patient'."""

    password_hash: Mapped[str] = mapped_column(String(255))
    """bcrypt hash of the account password."""

    # Doctor profile
    doctor_department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    consultation_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    """Doctor's consultation fee. Appointment pricing falls back to a default when unset."""

    # Metadata
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    @property
    def full_name(self) -> str:
        """First and last name joined, falling back to the email address."""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email

    __table_args__ = (
        Index('idx_users_role', 'role'),
        Index('idx_users_role_department', 'role', 'doctor_department'),
        Index('idx_users_nic', 'nic'),
    )
