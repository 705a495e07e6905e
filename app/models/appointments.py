"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Sequence,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

from app.models.users import metadata

# Source of the numeric part of appointment numbers
appointment_number_seq = Sequence("appointment_number_seq", metadata=metadata)

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("appointment_number", VARCHAR(20), nullable=False, unique=True),
    # Participants (immutable after creation)
    Column(
        "patient_id",
        UUID(as_uuid=True),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "doctor_id",
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("type", Text, nullable=False, server_default="consultation"),
    # Scheduling; start_at/end_at are derived from date, time and duration
    Column("scheduled_date", Date, nullable=False),
    Column("scheduled_time", VARCHAR(5), nullable=False),
    Column("duration", Integer, nullable=False, server_default=text("30")),
    Column("start_at", TIMESTAMP(timezone=True), nullable=False),
    Column("end_at", TIMESTAMP(timezone=True), nullable=False),
    # Status management
    Column(
        "status",
        Text,
        nullable=False,
        server_default="scheduled",
    ),
    # Clinical context
    Column("chief_complaint", Text, nullable=True),
    Column("notes", Text, nullable=True),
    # Cancellation (populated only on transition to cancelled)
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_by", UUID(as_uuid=True), nullable=True),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    # Audit fields
    Column("created_by", UUID(as_uuid=True), nullable=True),
    Column("last_modified_by", UUID(as_uuid=True), nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint("end_at > start_at", name="appointments_interval_check"),
    CheckConstraint("duration > 0", name="appointments_duration_check"),
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'checked_in', 'in_progress', 'completed', "
        "'cancelled', 'no_show', 'rescheduled')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "type IN ('consultation', 'follow_up', 'emergency', 'routine_checkup', "
        "'lab_test', 'imaging', 'vaccination')",
        name="appointments_type_check",
    ),
    Index("idx_appointments_doctor_interval", "doctor_id", "start_at", "end_at"),
    Index("idx_appointments_patient_date", "patient_id", "scheduled_date"),
    Index("idx_appointments_date_status", "scheduled_date", "status"),
)
