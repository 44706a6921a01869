"""User and patient directory schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    """Role discriminator for the single party record."""

    CLIENT = "client"
    VETERINARIAN = "veterinarian"
    SECRETARY = "secretary"


class UserResponse(BaseModel):
    """User schema for API responses."""

    id: UUID
    role: UserRole
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    specialty: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        """First and last name joined."""
        return f"{self.first_name} {self.last_name}"


class PatientResponse(BaseModel):
    """Patient (pet) schema for API responses."""

    id: UUID
    owner_id: UUID | None = None
    name: str
    species: str
    breed: str | None = None

    model_config = {"from_attributes": True}
