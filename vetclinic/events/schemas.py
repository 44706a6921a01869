"""Appointment lifecycle event payloads."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from vetclinic.core.timeutils import utcnow


class AppointmentEvent(BaseModel):
    """Fields shared by every lifecycle event."""

    appointment_id: UUID
    patient_id: UUID
    veterinarian_id: UUID
    client_id: UUID | None = None
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    patient_name: str | None = None
    veterinarian_name: str | None = None
    occurred_at: datetime = Field(default_factory=utcnow)


class AppointmentCreated(AppointmentEvent):
    """An appointment was scheduled."""

    event_type: Literal["appointment_created"] = "appointment_created"
    scheduled_at: datetime
    service_type: str | None = None


class AppointmentRescheduled(AppointmentEvent):
    """An appointment moved to a new time."""

    event_type: Literal["appointment_rescheduled"] = "appointment_rescheduled"
    previous_scheduled_at: datetime
    scheduled_at: datetime


class AppointmentCancelled(AppointmentEvent):
    """An appointment was cancelled."""

    event_type: Literal["appointment_cancelled"] = "appointment_cancelled"
    scheduled_at: datetime
    cancellation_reason: str | None = None


LifecycleEvent = AppointmentCreated | AppointmentRescheduled | AppointmentCancelled
