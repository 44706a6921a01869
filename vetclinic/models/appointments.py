"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from vetclinic.models.metadata import metadata

# Appointments are never deleted; cancelled and completed rows stay as history.
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True),
    # References
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    Column(
        "veterinarian_id",
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    # Appointment details
    Column("scheduled_at", DateTime(timezone=True), nullable=False),
    Column("service_type", String(50), nullable=True),
    Column("reason", Text, nullable=True),
    Column("triage_level", String(30), nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="scheduled"),
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("created_by", Uuid, nullable=True),
    Column("updated_by", Uuid, nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'completed', 'cancelled')",
        name="appointments_status_check",
    ),
    Index("idx_appointments_vet_scheduled_at", "veterinarian_id", "scheduled_at"),
)
