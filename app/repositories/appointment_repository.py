"""Appointment persistence using SQLAlchemy Core."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, and_, delete, func, insert, or_, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.scheduling import day_window
from app.models.appointments import appointment_number_seq, appointments
from app.models.patients import patients
from app.models.users import users
from app.schemas.appointments import BLOCKING_STATUSES, AppointmentFilters

BLOCKING_STATUS_VALUES = sorted(status.value for status in BLOCKING_STATUSES)


def overlap_condition(start_at: datetime, end_at: datetime) -> Any:
    """
    SQL predicate: stored ``[start_at, end_at)`` overlaps the candidate.

    Mirrors ``core.scheduling.intervals_overlap`` case by case.
    """
    c = appointments.c
    return or_(
        # candidate starts during an existing appointment
        and_(c.start_at <= start_at, c.end_at > start_at),
        # candidate ends during an existing appointment
        and_(c.start_at < end_at, c.end_at >= end_at),
        # candidate contains an existing appointment
        and_(c.start_at >= start_at, c.end_at <= end_at),
    )


def build_conflict_query(
    doctor_id: UUID,
    start_at: datetime,
    end_at: datetime,
    exclude_appointment_id: UUID | None = None,
) -> Select:
    """Select the first blocking appointment of a doctor overlapping the candidate."""
    conditions = [
        appointments.c.doctor_id == doctor_id,
        appointments.c.status.in_(BLOCKING_STATUS_VALUES),
        overlap_condition(start_at, end_at),
    ]
    if exclude_appointment_id is not None:
        conditions.append(appointments.c.id != exclude_appointment_id)

    return select(appointments.c.id).where(and_(*conditions)).limit(1)


def build_booked_intervals_query(
    doctor_id: UUID,
    day_start: datetime,
    day_end: datetime,
) -> Select:
    """Select blocking intervals of a doctor starting within an inclusive day window."""
    return (
        select(appointments.c.start_at, appointments.c.end_at)
        .where(
            and_(
                appointments.c.doctor_id == doctor_id,
                appointments.c.status.in_(BLOCKING_STATUS_VALUES),
                appointments.c.start_at >= day_start,
                appointments.c.start_at <= day_end,
            )
        )
        .order_by(appointments.c.start_at.asc())
    )


def build_filter_conditions(filters: AppointmentFilters, tz: Any) -> list[Any]:
    """Translate list filters into SQL conditions."""
    c = appointments.c
    conditions: list[Any] = []

    if filters.doctor_id:
        conditions.append(c.doctor_id == filters.doctor_id)

    if filters.patient_id:
        conditions.append(c.patient_id == filters.patient_id)

    if filters.status:
        conditions.append(c.status == filters.status.value)

    if filters.type:
        conditions.append(c.type == filters.type.value)

    if filters.on_date:
        day_start, day_end = day_window(filters.on_date, tz)
        conditions.append(c.start_at >= day_start)
        conditions.append(c.start_at <= day_end)
    else:
        if filters.start_date:
            conditions.append(c.start_at >= day_window(filters.start_date, tz)[0])
        if filters.end_date:
            conditions.append(c.start_at <= day_window(filters.end_date, tz)[1])

    if filters.upcoming_after:
        conditions.append(c.start_at >= filters.upcoming_after)

    return conditions


class AppointmentRepository:
    """Reads and writes of appointment records and their participants."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    async def has_conflict(
        self,
        doctor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_appointment_id: UUID | None = None,
    ) -> bool:
        """
        Check whether a doctor has a blocking appointment overlapping an interval.

        Args:
            doctor_id: Doctor user ID
            start_at: Candidate start (inclusive)
            end_at: Candidate end (exclusive)
            exclude_appointment_id: Appointment to ignore, when re-checking itself

        Returns:
            True if at least one conflicting appointment exists
        """
        if start_at >= end_at:
            return False

        stmt = build_conflict_query(doctor_id, start_at, end_at, exclude_appointment_id)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def list_booked_intervals(
        self,
        doctor_id: UUID,
        day_start: datetime,
        day_end: datetime,
    ) -> list[tuple[datetime, datetime]]:
        """Get ``(start_at, end_at)`` of a doctor's blocking appointments in a day window."""
        result = await self.db.execute(build_booked_intervals_query(doctor_id, day_start, day_end))
        return [(row.start_at, row.end_at) for row in result.fetchall()]

    async def get(self, appointment_id: UUID) -> dict | None:
        """Get appointment by ID."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def next_appointment_number(self) -> int:
        """Draw the next value of the appointment number sequence."""
        result = await self.db.execute(select(appointment_number_seq.next_value()))
        return int(result.scalar_one())

    async def insert(self, values: dict[str, Any]) -> dict:
        """Insert and commit an appointment, returning the stored row."""
        stmt = insert(appointments).values(**values).returning(appointments)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return dict(result.fetchone()._mapping)

    async def update(self, appointment_id: UUID, values: dict[str, Any]) -> dict | None:
        """Update and commit an appointment, returning the stored row."""
        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def delete(self, appointment_id: UUID) -> bool:
        """Permanently delete an appointment."""
        stmt = delete(appointments).where(appointments.c.id == appointment_id).returning(appointments.c.id)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.fetchone() is not None

    async def search(
        self,
        filters: AppointmentFilters,
        tz: Any,
    ) -> tuple[int, list[dict]]:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters
            tz: Clinic timezone for calendar-day filters

        Returns:
            Tuple of (total matching, rows of the requested page)
        """
        conditions = build_filter_conditions(filters, tz)
        where = and_(true(), *conditions)

        count_stmt = select(func.count()).select_from(appointments).where(where)
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        order = appointments.c.start_at.asc() if filters.sort_order == "asc" else appointments.c.start_at.desc()
        offset = (filters.page - 1) * filters.page_size

        stmt = select(appointments).where(where).order_by(order).limit(filters.page_size).offset(offset)
        result = await self.db.execute(stmt)
        return total, [dict(row._mapping) for row in result.fetchall()]

    async def get_doctor(self, doctor_id: UUID) -> dict | None:
        """Get an active user with the doctor role."""
        stmt = select(users).where(
            and_(
                users.c.id == doctor_id,
                users.c.role == "doctor",
                users.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def get_patient(self, patient_id: UUID) -> dict | None:
        """Get patient by ID."""
        result = await self.db.execute(select(patients).where(patients.c.id == patient_id))
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def get_patient_by_user(self, user_id: UUID) -> dict | None:
        """Get the patient record linked to a portal user."""
        result = await self.db.execute(select(patients).where(patients.c.user_id == user_id))
        row = result.fetchone()
        return dict(row._mapping) if row else None

