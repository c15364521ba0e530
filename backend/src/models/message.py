"""
Message model for patient notifications.

Status changes on an appointment leave a message for the patient. The message
keeps a copy of the contact details so it survives deletion of the appointment.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Boolean, Integer, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class Message(Base):
    """A notification or contact message addressed to a patient."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    first_name: Mapped[str] = mapped_column(String(255), default="")
    last_name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    message: Mapped[str] = mapped_column(Text)
    read: Mapped[bool] = mapped_column(Boolean, default=False)

    appointment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Appointment the notification is about (not a foreign key)."""

    sent_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
