"""Read-only lookups of patients and clinic staff, cached in Redis."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vetclinic.config import settings
from vetclinic.core.exceptions import NotFoundException
from vetclinic.core.redis_client import CacheManager
from vetclinic.models.patients import patients
from vetclinic.models.users import users
from vetclinic.schemas.users import PatientResponse, UserResponse, UserRole


class DirectoryService:
    """Lookups of records owned outside the appointment lifecycle."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager
        self.cache_ttl = settings.directory_cache_ttl_seconds

    @staticmethod
    def _get_user_cache_key(user_id: UUID) -> str:
        """Generate cache key for user."""
        return f"user:{user_id}"

    @staticmethod
    def _get_patient_cache_key(patient_id: UUID) -> str:
        """Generate cache key for patient."""
        return f"patient:{patient_id}"

    async def get_user(self, user_id: UUID) -> UserResponse | None:
        """Get user by ID with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_user_cache_key(user_id))
            if cached:
                return UserResponse.model_validate(cached)

        result = await self.db.execute(select(users).where(users.c.id == user_id))
        row = result.mappings().first()
        if not row:
            return None

        user = UserResponse.model_validate(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_user_cache_key(user_id),
                user.model_dump(mode="json"),
                ttl=self.cache_ttl,
            )

        return user

    async def get_veterinarian(self, veterinarian_id: UUID) -> UserResponse:
        """
        Get an active veterinarian.

        Raises:
            NotFoundException: If no active user with the veterinarian role has this ID
        """
        user = await self.get_user(veterinarian_id)
        if user is None or user.role != UserRole.VETERINARIAN or not user.is_active:
            raise NotFoundException("Veterinarian not found", veterinarian_id=str(veterinarian_id))
        return user

    async def get_patient(self, patient_id: UUID) -> PatientResponse:
        """
        Get patient by ID with caching.

        Raises:
            NotFoundException: If patient does not exist
        """
        if self.cache:
            cached = self.cache.get_json(self._get_patient_cache_key(patient_id))
            if cached:
                return PatientResponse.model_validate(cached)

        result = await self.db.execute(select(patients).where(patients.c.id == patient_id))
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Patient not found", patient_id=str(patient_id))

        patient = PatientResponse.model_validate(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_patient_cache_key(patient_id),
                patient.model_dump(mode="json"),
                ttl=self.cache_ttl,
            )

        return patient

