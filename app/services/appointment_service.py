"""Appointment service: booking, rescheduling and availability."""

import math
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

import structlog

from app.config import settings
from app.core.exceptions import (
    BadRequestException,
    NotFoundException,
    SchedulingConflictException,
)
from app.core.locks import LockManager, doctor_lock_key
from app.core.scheduling import (
    compute_interval,
    day_window,
    filter_available_slots,
    format_appointment_number,
    generate_slots,
    get_timezone,
)
from app.repositories.appointment_repository import AppointmentRepository
from app.schemas.appointments import (
    BLOCKING_STATUSES,
    TERMINAL_STATUSES,
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
)
from app.schemas.doctors import (
    DoctorAvailabilityResponse,
    DoctorSummary,
    SlotResponse,
    WorkingHours,
)
from app.schemas.notifications import AppointmentCancellation, AppointmentReminder
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)

# Main line of the lifecycle; forward moves may skip stages
STATUS_FLOW = [
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.CHECKED_IN,
    AppointmentStatus.IN_PROGRESS,
    AppointmentStatus.COMPLETED,
]

SIDE_EXITS = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }
)

TEMPORAL_FIELDS = frozenset({"scheduled_date", "scheduled_time", "duration"})


def is_valid_transition(old: AppointmentStatus, new: AppointmentStatus) -> bool:
    """Check whether the lifecycle allows moving from ``old`` to ``new``."""
    if old in TERMINAL_STATUSES or old == new:
        return False
    if new in SIDE_EXITS:
        return True
    if old == AppointmentStatus.RESCHEDULED:
        return new in (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(old)


def _full_name(record: dict) -> str:
    return f"{record.get('first_name', '')} {record.get('last_name', '')}".strip()


class AppointmentService:
    """
    Service for managing appointments.

    Every write that can change what a doctor's calendar occupies runs its
    conflict check and its commit while holding ``locks:doctor:<id>``, so two
    overlapping bookings for the same doctor are serialized; bookings for
    different doctors do not contend.
    """

    def __init__(
        self,
        repository: AppointmentRepository,
        lock_manager: LockManager,
        notifier: NotificationService | None = None,
        clock: Callable[[], datetime] | None = None,
        timezone: str | None = None,
    ):
        """
        Initialize service with its collaborators.

        Args:
            repository: Appointment persistence
            lock_manager: Per-doctor mutual exclusion
            notifier: Notification task producer, optional
            clock: Returns the current aware instant
            timezone: Clinic timezone name, defaults to settings
        """
        self.repository = repository
        self.lock_manager = lock_manager
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(UTC))
        self.tz = get_timezone(timezone or settings.clinic_timezone)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def create_appointment(
        self,
        actor_id: UUID,
        data: AppointmentCreate,
    ) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            actor_id: ID of the user making the booking
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            ValidationException: If the time or duration is invalid
            NotFoundException: If the doctor or patient does not exist
            SchedulingConflictException: If the slot overlaps a blocking appointment
            LockNotAcquiredException: If the doctor's calendar stays locked
        """
        duration = data.duration or settings.default_appointment_duration
        start_at, end_at = compute_interval(
            data.scheduled_date, data.scheduled_time, duration, self.tz
        )

        doctor = await self._get_doctor(data.doctor_id)
        patient = await self._get_patient(data.patient_id)

        async with self.lock_manager.acquire(doctor_lock_key(data.doctor_id)):
            if await self.repository.has_conflict(data.doctor_id, start_at, end_at):
                logger.info(
                    "scheduling_conflict",
                    doctor_id=str(data.doctor_id),
                    start_at=start_at.isoformat(),
                    end_at=end_at.isoformat(),
                )
                raise SchedulingConflictException()

            now = self.clock()
            sequence = await self.repository.next_appointment_number()
            row = await self.repository.insert(
                {
                    "appointment_number": format_appointment_number(now.year, sequence),
                    "patient_id": data.patient_id,
                    "doctor_id": data.doctor_id,
                    "type": data.type.value,
                    "scheduled_date": data.scheduled_date,
                    "scheduled_time": data.scheduled_time,
                    "duration": duration,
                    "start_at": start_at,
                    "end_at": end_at,
                    "status": AppointmentStatus.SCHEDULED.value,
                    "chief_complaint": data.chief_complaint,
                    "notes": data.notes,
                    "created_by": actor_id,
                    "last_modified_by": actor_id,
                }
            )

        appointment = AppointmentResponse.model_validate(row)
        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            appointment_number=appointment.appointment_number,
            doctor_id=str(appointment.doctor_id),
        )

        await self._schedule_reminder(appointment, patient, doctor)
        return appointment

    async def update_appointment(
        self,
        appointment_id: UUID,
        actor_id: UUID,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Update an appointment, rescheduling it when its time changes.

        A change of date, time or duration re-runs the conflict check,
        ignoring the appointment itself, under the doctor's lock.

        Raises:
            NotFoundException: If appointment not found
            BadRequestException: If a finished appointment is rescheduled
            SchedulingConflictException: If the new time is taken
        """
        current = await self._get_or_404(appointment_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if not changes:
            return AppointmentResponse.model_validate(current)

        values: dict[str, Any] = {
            field: value.value if isinstance(value, Enum) else value
            for field, value in changes.items()
        }
        values["last_modified_by"] = actor_id
        values["updated_at"] = self.clock()

        if not TEMPORAL_FIELDS & changes.keys():
            row = await self.repository.update(appointment_id, values)
            return AppointmentResponse.model_validate(row)

        if AppointmentStatus(current["status"]) in TERMINAL_STATUSES:
            raise BadRequestException(
                f"Cannot reschedule an appointment that is {current['status']}"
            )

        scheduled_date = changes.get("scheduled_date", current["scheduled_date"])
        scheduled_time = changes.get("scheduled_time", current["scheduled_time"])
        duration = changes.get("duration", current["duration"])
        start_at, end_at = compute_interval(scheduled_date, scheduled_time, duration, self.tz)
        values.update(
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            duration=duration,
            start_at=start_at,
            end_at=end_at,
        )

        doctor_id = current["doctor_id"]
        async with self.lock_manager.acquire(doctor_lock_key(doctor_id)):
            if await self.repository.has_conflict(
                doctor_id, start_at, end_at, exclude_appointment_id=appointment_id
            ):
                logger.info(
                    "reschedule_conflict",
                    appointment_id=str(appointment_id),
                    start_at=start_at.isoformat(),
                )
                raise SchedulingConflictException("Time slot is not available")

            row = await self.repository.update(appointment_id, values)

        logger.info("appointment_rescheduled", appointment_id=str(appointment_id))
        return AppointmentResponse.model_validate(row)

    async def update_status(
        self,
        appointment_id: UUID,
        actor_id: UUID,
        status: AppointmentStatus,
    ) -> AppointmentResponse:
        """
        Move an appointment along its lifecycle.

        Moving a non-blocking appointment (``checked_in`` or ``rescheduled``)
        into a blocking status puts it back on the calendar, so that
        transition is conflict-checked under the doctor's lock.
        """
        if status == AppointmentStatus.CANCELLED:
            return await self.cancel_appointment(appointment_id, actor_id, AppointmentCancel())

        current = await self._get_or_404(appointment_id)
        old_status = AppointmentStatus(current["status"])

        if old_status == status:
            return AppointmentResponse.model_validate(current)

        if not is_valid_transition(old_status, status):
            raise BadRequestException(
                f"Cannot change status from {old_status.value} to {status.value}"
            )

        values = {
            "status": status.value,
            "last_modified_by": actor_id,
            "updated_at": self.clock(),
        }

        if old_status not in BLOCKING_STATUSES and status in BLOCKING_STATUSES:
            doctor_id = current["doctor_id"]
            async with self.lock_manager.acquire(doctor_lock_key(doctor_id)):
                if await self.repository.has_conflict(
                    doctor_id,
                    current["start_at"],
                    current["end_at"],
                    exclude_appointment_id=appointment_id,
                ):
                    raise SchedulingConflictException("Time slot is not available")
                row = await self.repository.update(appointment_id, values)
        else:
            row = await self.repository.update(appointment_id, values)

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            old_status=old_status.value,
            new_status=status.value,
        )
        return AppointmentResponse.model_validate(row)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        actor_id: UUID,
        data: AppointmentCancel,
    ) -> AppointmentResponse:
        """
        Cancel an appointment and notify the patient.

        Raises:
            NotFoundException: If appointment not found
            BadRequestException: If the appointment is already cancelled or finished
        """
        current = await self._get_or_404(appointment_id)
        old_status = AppointmentStatus(current["status"])

        if old_status == AppointmentStatus.CANCELLED:
            raise BadRequestException("Appointment is already cancelled")
        if old_status in TERMINAL_STATUSES:
            raise BadRequestException(f"Cannot cancel an appointment that is {old_status.value}")

        now = self.clock()
        row = await self.repository.update(
            appointment_id,
            {
                "status": AppointmentStatus.CANCELLED.value,
                "cancellation_reason": data.reason,
                "cancelled_by": actor_id,
                "cancelled_at": now,
                "last_modified_by": actor_id,
                "updated_at": now,
            },
        )
        appointment = AppointmentResponse.model_validate(row)
        logger.info("appointment_cancelled", appointment_id=str(appointment_id))

        await self._send_cancellation_notice(appointment, data.reason)
        return appointment

    async def delete_appointment(self, appointment_id: UUID) -> None:
        """
        Permanently delete an appointment (administrative).

        Raises:
            NotFoundException: If appointment not found
        """
        if not await self.repository.delete(appointment_id):
            raise NotFoundException("Appointment not found")
        logger.info("appointment_deleted", appointment_id=str(appointment_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """Get appointment by ID."""
        return AppointmentResponse.model_validate(await self._get_or_404(appointment_id))

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments
        """
        total, rows = await self.repository.search(filters, self.tz)
        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            pages=math.ceil(total / filters.page_size) if total else 0,
            items=[AppointmentResponse.model_validate(row) for row in rows],
        )

    async def list_patient_appointments(
        self,
        user_id: UUID,
        status: AppointmentStatus | None = None,
        upcoming: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> AppointmentListResponse:
        """
        List appointments of the patient linked to a portal user, newest first.

        Raises:
            NotFoundException: If the user has no patient record
        """
        patient = await self.repository.get_patient_by_user(user_id)
        if not patient:
            raise NotFoundException("Patient record not found")

        filters = AppointmentFilters(
            patient_id=patient["id"],
            status=status,
            upcoming_after=self.clock() if upcoming else None,
            page=page,
            page_size=page_size,
            sort_order="desc",
        )
        return await self.list_appointments(filters)

    async def get_doctor_schedule(
        self,
        doctor_id: UUID,
        on_date: date | None = None,
        status: AppointmentStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> AppointmentListResponse:
        """List a doctor's appointments in start order, optionally for one day."""
        filters = AppointmentFilters(
            doctor_id=doctor_id,
            on_date=on_date,
            status=status,
            page=page,
            page_size=page_size,
            sort_order="asc",
        )
        return await self.list_appointments(filters)

    async def check_availability(
        self,
        data: AvailabilityCheckRequest,
    ) -> AvailabilityCheckResponse:
        """
        Check whether a slot is free. Advisory only; booking re-checks under the lock.

        Raises:
            ValidationException: If the time or duration is invalid
            NotFoundException: If the doctor does not exist
        """
        start_at, end_at = compute_interval(
            data.scheduled_date, data.scheduled_time, data.duration, self.tz
        )
        await self._get_doctor(data.doctor_id)

        conflict = await self.repository.has_conflict(data.doctor_id, start_at, end_at)
        return AvailabilityCheckResponse(
            available=not conflict,
            message="Time slot is not available" if conflict else "Time slot is available",
        )

    async def get_available_slots(
        self,
        doctor_id: UUID,
        on_date: date,
        slot_duration: int | None = None,
    ) -> DoctorAvailabilityResponse:
        """
        Compute bookable slots of a doctor for one calendar day.

        Args:
            doctor_id: Doctor user ID
            on_date: Calendar date
            slot_duration: Slot size in minutes, defaults to settings

        Returns:
            Slot view with summary counts

        Raises:
            NotFoundException: If the doctor does not exist
        """
        slot_minutes = slot_duration or settings.default_slot_minutes
        doctor = await self._get_doctor(doctor_id)

        candidates = generate_slots(
            on_date,
            slot_minutes,
            settings.working_hours_start,
            settings.working_hours_end,
            self.tz,
        )
        day_start, day_end = day_window(on_date, self.tz)
        booked = await self.repository.list_booked_intervals(doctor_id, day_start, day_end)
        available = filter_available_slots(candidates, booked, self.clock())

        return DoctorAvailabilityResponse(
            doctor=DoctorSummary(
                id=doctor["id"],
                name=_full_name(doctor),
                specialization=doctor.get("specialization"),
            ),
            date=on_date,
            working_hours=WorkingHours(
                start=f"{settings.working_hours_start:02d}:00",
                end=f"{settings.working_hours_end:02d}:00",
            ),
            slot_duration=slot_minutes,
            total_slots=len(candidates),
            available_slots=len(available),
            booked_slots=len(candidates) - len(available),
            slots=[
                SlotResponse(time=slot.label, start=slot.start, end=slot.end)
                for slot in available
            ],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_or_404(self, appointment_id: UUID) -> dict:
        row = await self.repository.get(appointment_id)
        if not row:
            raise NotFoundException("Appointment not found")
        return row

    async def _get_doctor(self, doctor_id: UUID) -> dict:
        doctor = await self.repository.get_doctor(doctor_id)
        if not doctor:
            raise NotFoundException("Doctor not found")
        return doctor

    async def _get_patient(self, patient_id: UUID) -> dict:
        patient = await self.repository.get_patient(patient_id)
        if not patient:
            raise NotFoundException("Patient not found")
        return patient

    async def _schedule_reminder(
        self,
        appointment: AppointmentResponse,
        patient: dict,
        doctor: dict,
    ) -> None:
        """Queue a reminder when the appointment is further away than the lead time."""
        if self.notifier is None:
            return

        send_at = appointment.start_at - timedelta(hours=settings.reminder_lead_hours)
        if send_at <= self.clock():
            return

        if not patient.get("email"):
            logger.info("reminder_skipped_no_email", appointment_id=str(appointment.id))
            return

        try:
            await self.notifier.schedule_appointment_reminder(
                AppointmentReminder(
                    appointment_id=appointment.id,
                    appointment_number=appointment.appointment_number,
                    to=patient["email"],
                    patient_name=_full_name(patient),
                    doctor_name=_full_name(doctor),
                    appointment_date=appointment.scheduled_date,
                    appointment_time=appointment.scheduled_time,
                    appointment_type=appointment.type.value,
                    send_at=send_at,
                )
            )
        except Exception as e:
            # The booking is committed; a lost reminder must not undo it
            logger.warning(
                "failed_to_schedule_appointment_reminder",
                appointment_id=str(appointment.id),
                error=str(e),
            )

    async def _send_cancellation_notice(
        self,
        appointment: AppointmentResponse,
        reason: str | None,
    ) -> None:
        if self.notifier is None:
            return

        try:
            patient = await self.repository.get_patient(appointment.patient_id)
            doctor = await self.repository.get_doctor(appointment.doctor_id)
            if not patient or not patient.get("email"):
                logger.info("cancellation_notice_skipped", appointment_id=str(appointment.id))
                return

            await self.notifier.send_cancellation_notice(
                AppointmentCancellation(
                    appointment_id=appointment.id,
                    appointment_number=appointment.appointment_number,
                    to=patient["email"],
                    patient_name=_full_name(patient),
                    doctor_name=_full_name(doctor) if doctor else "",
                    appointment_date=appointment.scheduled_date,
                    appointment_time=appointment.scheduled_time,
                    reason=reason,
                )
            )
        except Exception as e:
            logger.warning(
                "failed_to_send_cancellation_notice",
                appointment_id=str(appointment.id),
                error=str(e),
            )
