"""Doctor availability and schedule endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import AppointmentServiceDep, CurrentUser
from app.schemas.appointments import AppointmentFilters, AppointmentListResponse, AppointmentStatus
from app.schemas.doctors import DoctorAvailabilityResponse

router = APIRouter()


@router.get(
    "/{doctor_id}/availability",
    response_model=DoctorAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Doctors"],
    summary="Get bookable slots for a day",
)
async def get_doctor_availability(
    doctor_id: UUID,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
    on_date: date = Query(..., alias="date"),
    slot_duration: int | None = Query(None, ge=5, le=240),
) -> DoctorAvailabilityResponse:
    """
    Get the free slots of a doctor within working hours.

    Slots that overlap a booked appointment or have already started are
    left out.

    Args:
        doctor_id: Doctor user ID
        current_user: Authenticated user
        service: Appointment service
        on_date: Calendar date
        slot_duration: Slot size in minutes

    Returns:
        Available slots with summary counts
    """
    return await service.get_available_slots(doctor_id, on_date, slot_duration)


@router.get(
    "/{doctor_id}/appointments",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Doctors"],
    summary="List a doctor's appointments",
)
async def get_doctor_appointments(
    doctor_id: UUID,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """List appointments of a doctor between two dates, earliest first."""
    filters = AppointmentFilters(
        doctor_id=doctor_id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)
