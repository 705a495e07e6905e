"""Notification payloads handed to the email worker."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class AppointmentNotification(BaseModel):
    """Fields shared by every appointment notification."""

    appointment_id: UUID
    appointment_number: str
    to: str = Field(..., description="Recipient email address")
    patient_name: str
    doctor_name: str
    appointment_date: date
    appointment_time: str


class AppointmentReminder(AppointmentNotification):
    """Reminder to be delivered ahead of the appointment."""

    appointment_type: str
    send_at: datetime


class AppointmentCancellation(AppointmentNotification):
    """Notice that an appointment was cancelled."""

    reason: str | None = None

