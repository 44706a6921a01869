"""Database models."""

from vetclinic.models.appointments import appointments
from vetclinic.models.metadata import metadata
from vetclinic.models.notifications import notifications
from vetclinic.models.patients import patients
from vetclinic.models.users import users

__all__ = [
    "appointments",
    "metadata",
    "notifications",
    "patients",
    "users",
]
