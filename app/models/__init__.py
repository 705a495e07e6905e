"""Database models."""

from app.models.appointments import appointment_number_seq, appointments
from app.models.patients import patients
from app.models.users import metadata, users

__all__ = [
    "appointment_number_seq",
    "appointments",
    "metadata",
    "patients",
    "users",
]
