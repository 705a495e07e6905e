"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

TIME_REGEX = r"^([01]\d|2[0-3]):([0-5]\d)$"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


# Statuses that occupy a doctor's calendar
BLOCKING_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.IN_PROGRESS,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }
)


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    ROUTINE_CHECKUP = "routine_checkup"
    LAB_TEST = "lab_test"
    IMAGING = "imaging"
    VACCINATION = "vaccination"


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    patient_id: UUID
    doctor_id: UUID
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=TIME_REGEX, examples=["10:00"])
    duration: int | None = Field(None, gt=0, le=480, description="Minutes")
    type: AppointmentType = AppointmentType.CONSULTATION
    chief_complaint: str | None = Field(None, max_length=1000)
    notes: str | None = Field(None, max_length=2000)


class AppointmentUpdate(BaseModel):
    """Schema for updating an existing appointment.

    Participants cannot be changed; rescheduling changes time only.
    """

    model_config = {"extra": "forbid"}

    scheduled_date: date | None = None
    scheduled_time: str | None = Field(None, pattern=TIME_REGEX)
    duration: int | None = Field(None, gt=0, le=480)
    type: AppointmentType | None = None
    chief_complaint: str | None = Field(None, max_length=1000)
    notes: str | None = Field(None, max_length=2000)


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    appointment_number: str
    patient_id: UUID
    doctor_id: UUID
    type: AppointmentType
    scheduled_date: date
    scheduled_time: str
    duration: int
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus
    chief_complaint: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: UUID | None = None
    cancelled_at: datetime | None = None
    created_by: UUID | None = None
    last_modified_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    pages: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    status: AppointmentStatus | None = None
    type: AppointmentType | None = None
    on_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    upcoming_after: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
    sort_order: Literal["asc", "desc"] = "asc"


class AvailabilityCheckRequest(BaseModel):
    """Schema for probing a single slot before booking."""

    doctor_id: UUID
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=TIME_REGEX)
    duration: int = Field(default=30, gt=0, le=480)


class AvailabilityCheckResponse(BaseModel):
    """Schema for availability check result."""

    available: bool
    message: str
