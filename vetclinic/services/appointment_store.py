"""Persistence of appointment records using SQLAlchemy Core."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Select, and_, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vetclinic.core.timeutils import as_utc
from vetclinic.models.appointments import appointments
from vetclinic.models.patients import patients
from vetclinic.models.users import users
from vetclinic.schemas.appointments import AppointmentFilters, AppointmentStatus

_DATETIME_FIELDS = ("scheduled_at", "cancelled_at", "completed_at", "created_at", "updated_at")

owners = users.alias("owners")
veterinarians = users.alias("veterinarians")


def _normalize(row: Any) -> dict[str, Any]:
    """Row mapping as a dict with every timestamp in aware UTC."""
    record = dict(row)
    for key in _DATETIME_FIELDS:
        if record.get(key) is not None:
            record[key] = as_utc(record[key])
    return record


def _detail_query() -> Select:
    """Appointments joined with the patient, owner and veterinarian names."""
    return (
        select(
            appointments,
            patients.c.name.label("patient_name"),
            patients.c.species.label("patient_species"),
            owners.c.first_name.label("owner_first_name"),
            owners.c.last_name.label("owner_last_name"),
            veterinarians.c.first_name.label("vet_first_name"),
            veterinarians.c.last_name.label("vet_last_name"),
            veterinarians.c.specialty.label("vet_specialty"),
        )
        .select_from(appointments)
        .join(patients, appointments.c.patient_id == patients.c.id)
        .outerjoin(owners, patients.c.owner_id == owners.c.id)
        .join(veterinarians, appointments.c.veterinarian_id == veterinarians.c.id)
    )


class AppointmentStore:
    """
    Reads and writes appointment rows.

    Every write is audit-stamped here with the acting user and the time of the
    change; callers pass both explicitly.
    """

    def __init__(self, db: AsyncSession):
        """Initialize store with database session."""
        self.db = db

    @staticmethod
    def _stamp(
        values: dict[str, Any],
        actor_id: UUID | None,
        now: datetime,
        creating: bool = False,
    ) -> dict[str, Any]:
        stamped = dict(values)
        stamped["updated_at"] = now
        stamped["updated_by"] = actor_id
        if creating:
            stamped["created_at"] = now
            stamped["created_by"] = actor_id
        return stamped

    async def find_by_id(self, appointment_id: UUID, for_update: bool = False) -> dict | None:
        """
        Get a bare appointment row.

        Args:
            appointment_id: Appointment ID
            for_update: Lock the row until the transaction ends

        Returns:
            Appointment record or None
        """
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return _normalize(row) if row else None

    async def get_detail(self, appointment_id: UUID) -> dict | None:
        """Get an appointment with patient, owner and veterinarian names."""
        result = await self.db.execute(_detail_query().where(appointments.c.id == appointment_id))
        row = result.mappings().first()
        return _normalize(row) if row else None

    async def insert(
        self,
        values: dict[str, Any],
        actor_id: UUID | None,
        now: datetime,
    ) -> UUID:
        """
        Insert a new appointment.

        Returns:
            ID of the created appointment
        """
        appointment_id = uuid4()
        stamped = self._stamp({"id": appointment_id, **values}, actor_id, now, creating=True)
        await self.db.execute(insert(appointments).values(**stamped))
        return appointment_id

    async def update(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
        actor_id: UUID | None,
        now: datetime,
    ) -> None:
        """Apply all field changes to one appointment in a single UPDATE."""
        stamped = self._stamp(values, actor_id, now)
        await self.db.execute(
            update(appointments).where(appointments.c.id == appointment_id).values(**stamped)
        )

    async def _lock_user(self, user_id: UUID) -> dict | None:
        result = await self.db.execute(
            select(users.c.id, users.c.role, users.c.is_active)
            .where(users.c.id == user_id)
            .with_for_update()
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def lock_owner(self, owner_id: UUID) -> None:
        """
        Take a row lock on a patient owner until the transaction ends.

        Bookings for the same client's pets queue up here, so the per-day count
        and the write that follows it cannot interleave. Always taken before
        the veterinarian lock.
        """
        await self._lock_user(owner_id)

    async def lock_veterinarian(self, veterinarian_id: UUID) -> dict | None:
        """
        Take a row lock on the veterinarian until the transaction ends.

        Concurrent bookings for the same veterinarian queue up here, so the
        overlap check and the write that follows it cannot interleave.

        Returns:
            The freshly read ``id``, ``role`` and ``is_active`` columns, or None
        """
        return await self._lock_user(veterinarian_id)

    async def find_conflicting(
        self,
        veterinarian_id: UUID,
        window_start: datetime,
        window_end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[dict]:
        """
        Scheduled appointments of a veterinarian starting strictly inside a window.

        Args:
            veterinarian_id: Veterinarian ID
            window_start: Exclusive lower bound
            window_end: Exclusive upper bound
            exclude_id: Appointment to ignore (the one being rescheduled)

        Returns:
            Matching appointments ordered by ascending start time
        """
        conditions = [
            appointments.c.veterinarian_id == veterinarian_id,
            appointments.c.status == AppointmentStatus.SCHEDULED.value,
            appointments.c.scheduled_at > as_utc(window_start),
            appointments.c.scheduled_at < as_utc(window_end),
        ]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        result = await self.db.execute(
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_at.asc())
        )
        return [_normalize(row) for row in result.mappings().all()]

    async def count_scheduled_for_owner(
        self,
        owner_id: UUID,
        start: datetime,
        end: datetime,
    ) -> int:
        """Count scheduled appointments of an owner's patients with start in ``[start, end)``."""
        stmt = (
            select(func.count())
            .select_from(appointments)
            .join(patients, appointments.c.patient_id == patients.c.id)
            .where(
                and_(
                    patients.c.owner_id == owner_id,
                    appointments.c.status == AppointmentStatus.SCHEDULED.value,
                    appointments.c.scheduled_at >= as_utc(start),
                    appointments.c.scheduled_at < as_utc(end),
                )
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def list_scheduled_between(
        self,
        veterinarian_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[dict]:
        """Scheduled appointments of a veterinarian with start in ``[start, end)``, with names."""
        stmt = (
            _detail_query()
            .where(
                and_(
                    appointments.c.veterinarian_id == veterinarian_id,
                    appointments.c.status == AppointmentStatus.SCHEDULED.value,
                    appointments.c.scheduled_at >= as_utc(start),
                    appointments.c.scheduled_at < as_utc(end),
                )
            )
            .order_by(appointments.c.scheduled_at.asc())
        )
        result = await self.db.execute(stmt)
        return [_normalize(row) for row in result.mappings().all()]

    async def list_appointments(self, filters: AppointmentFilters) -> tuple[int, list[dict]]:
        """
        List appointments with filtering and pagination.

        Returns:
            Tuple of (total matching, page of appointment details)
        """
        conditions = []

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.veterinarian_id:
            conditions.append(appointments.c.veterinarian_id == filters.veterinarian_id)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.from_date:
            conditions.append(appointments.c.scheduled_at >= as_utc(filters.from_date))

        if filters.to_date:
            conditions.append(appointments.c.scheduled_at <= as_utc(filters.to_date))

        count_stmt = select(func.count()).select_from(appointments)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        stmt = _detail_query()
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = (
            stmt.order_by(appointments.c.scheduled_at.desc())
            .limit(filters.page_size)
            .offset((filters.page - 1) * filters.page_size)
        )

        result = await self.db.execute(stmt)
        return total, [_normalize(row) for row in result.mappings().all()]
