"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vetclinic.core.timeutils import as_utc


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentCreate(BaseModel):
    """Schema for scheduling a new appointment."""

    patient_id: UUID
    veterinarian_id: UUID
    scheduled_at: datetime
    service_type: str | None = Field(None, max_length=50)
    reason: str | None = Field(None, max_length=1000)
    triage_level: str | None = Field(None, max_length=30)

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, v: datetime) -> datetime:
        """Store every appointment time in UTC."""
        return as_utc(v)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new time."""

    scheduled_at: datetime

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, v: datetime) -> datetime:
        """Store every appointment time in UTC."""
        return as_utc(v)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(..., min_length=1, max_length=500)


class PatientSummary(BaseModel):
    """Patient details echoed back with an appointment."""

    id: UUID
    name: str | None = None
    species: str | None = None
    owner_name: str | None = None


class VeterinarianSummary(BaseModel):
    """Veterinarian details echoed back with an appointment."""

    id: UUID
    full_name: str | None = None
    specialty: str | None = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    veterinarian_id: UUID
    scheduled_at: datetime
    service_type: str | None = None
    reason: str | None = None
    triage_level: str | None = None
    status: AppointmentStatus
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    created_by: UUID | None = None
    updated_by: UUID | None = None
    patient: PatientSummary | None = None
    veterinarian: VeterinarianSummary | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    veterinarian_id: UUID | None = None
    patient_id: UUID | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AvailabilityResponse(BaseModel):
    """Whether a veterinarian can take an appointment at a given time."""

    veterinarian_id: UUID
    scheduled_at: datetime
    available: bool


class SlotState(str, Enum):
    """Occupancy of a bookable slot."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"


class TimeSlot(BaseModel):
    """A bookable slot in a veterinarian's day."""

    starts_at: datetime
    duration_minutes: int
    available: bool
    state: SlotState
    appointment_id: UUID | None = None
    patient_name: str | None = None


class DailySlotsResponse(BaseModel):
    """All bookable slots for one veterinarian on one day."""

    veterinarian_id: UUID
    date: date
    slots: list[TimeSlot]
