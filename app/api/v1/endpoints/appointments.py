"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import AppointmentServiceDep, CurrentUser
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentType,
    AppointmentUpdate,
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
)

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book new appointment",
    responses={
        404: {"description": "Doctor or patient not found"},
        409: {"description": "Time slot is not available"},
        503: {"description": "Doctor's schedule is busy, retry later"},
    },
)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Book a new appointment on behalf of the authenticated user.

    Args:
        data: Appointment creation data
        current_user: Authenticated user
        service: Appointment service

    Returns:
        Created appointment
    """
    return await service.create_appointment(current_user["id"], data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    current_user: CurrentUser,
    service: AppointmentServiceDep,
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    type_filter: AppointmentType | None = Query(None, alias="type"),
    on_date: date | None = Query(None, alias="date"),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    ``date`` selects one calendar day and takes precedence over
    ``start_date``/``end_date``.
    """
    filters = AppointmentFilters(
        doctor_id=doctor_id,
        patient_id=patient_id,
        status=status_filter,
        type=type_filter,
        on_date=on_date,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
        sort_order=sort_order,
    )
    return await service.list_appointments(filters)


@router.get(
    "/my-appointments",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List my appointments (patient)",
)
async def list_my_appointments(
    current_user: CurrentUser,
    service: AppointmentServiceDep,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    upcoming: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments of the patient record linked to the authenticated user.

    Raises:
        HTTPException: If the user has no patient record
    """
    return await service.list_patient_appointments(
        current_user["id"],
        status=status_filter,
        upcoming=upcoming,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/my-schedule",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get my schedule (doctor)",
)
async def get_my_schedule(
    current_user: CurrentUser,
    service: AppointmentServiceDep,
    on_date: date | None = Query(None, alias="date"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """List appointments booked with the authenticated doctor."""
    return await service.get_doctor_schedule(
        current_user["id"],
        on_date=on_date,
        status=status_filter,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/check-availability",
    response_model=AvailabilityCheckResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check whether a time slot is free",
)
async def check_availability(
    data: AvailabilityCheckRequest,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AvailabilityCheckResponse:
    """
    Check a slot before booking.

    The answer is advisory: booking repeats the check under the doctor's lock.
    """
    return await service.check_availability(data)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        HTTPException: If appointment not found
    """
    return await service.get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update or reschedule appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Update an existing appointment.

    Args:
        appointment_id: Appointment ID
        data: Update data
        current_user: Authenticated user
        service: Appointment service

    Returns:
        Updated appointment

    Raises:
        HTTPException: If appointment not found or the new time is taken
    """
    return await service.update_appointment(appointment_id, current_user["id"], data)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """Update appointment status (e.g., confirm, check in, complete)."""
    return await service.update_status(appointment_id, current_user["id"], data.status)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Cancel an appointment, freeing its slot.

    Raises:
        HTTPException: If appointment not found or already cancelled
    """
    return await service.cancel_appointment(appointment_id, current_user["id"], data)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> None:
    """
    Permanently delete an appointment.

    Raises:
        HTTPException: If appointment not found
    """
    await service.delete_appointment(appointment_id)
