"""Doctor schedule and availability schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel


class DoctorSummary(BaseModel):
    """Minimal doctor identity shown alongside availability."""

    id: UUID
    name: str
    specialization: str | None = None


class WorkingHours(BaseModel):
    """Working hours of a day, as ``HH:MM`` strings."""

    start: str
    end: str


class SlotResponse(BaseModel):
    """A bookable slot."""

    time: str
    start: datetime
    end: datetime
    available: bool = True


class DoctorAvailabilityResponse(BaseModel):
    """Bookable slots of a doctor for one calendar day."""

    doctor: DoctorSummary
    date: date
    working_hours: WorkingHours
    slot_duration: int
    total_slots: int
    available_slots: int
    booked_slots: int
    slots: list[SlotResponse]
