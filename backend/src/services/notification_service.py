"""
Patient notifications for appointment status changes.

Notifications are stored as Message rows that the patient portal reads; there
is no outbound delivery channel.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from models.appointment import Appointment
from models.message import Message
from utils.datetime_utils import clinic_now, parse_appointment_date, format_display_datetime

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for creating patient notification messages."""

    @staticmethod
    def format_status_message(appointment: Appointment) -> str:
        """Text of the notification sent when an appointment changes status."""
        visit_at = parse_appointment_date(appointment.appointment_date)
        scheduled = format_display_datetime(visit_at) if visit_at else appointment.appointment_date
        return f"Your appointment scheduled on {scheduled} is now {appointment.status}."

    @staticmethod
    def notify_status_change(db: Session, appointment: Appointment) -> Message:
        """
        Leave a message for the patient about the appointment's new status.

        Returns:
            Created message (flushed, not committed)
        """
        now = clinic_now()
        message = Message(
            first_name=appointment.first_name or "",
            last_name=appointment.last_name or "",
            email=appointment.email,
            phone=appointment.phone,
            message=NotificationService.format_status_message(appointment),
            read=False,
            appointment_id=appointment.id,
            sent_at=now,
        )
        db.add(message)
        db.flush()

        logger.info(f"Notified patient of appointment {appointment.id} status {appointment.status}")
        return message

    @staticmethod
    def notify_status_change_safely(db: Session, appointment: Appointment) -> Optional[Message]:
        """Best-effort notify_status_change inside a savepoint; failures are logged."""
        try:
            with db.begin_nested():
                return NotificationService.notify_status_change(db, appointment)
        except Exception as e:
            logger.exception(f"Failed to notify patient for appointment {appointment.id}: {e}")
            return None
