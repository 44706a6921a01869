"""Appointment lifecycle service: schedule, reschedule, cancel and complete."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from vetclinic.config import settings
from vetclinic.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
)
from vetclinic.core.redis_client import CacheManager
from vetclinic.core.timeutils import Clock, as_utc, utcnow
from vetclinic.events.bus import EventBus
from vetclinic.events.schemas import (
    AppointmentCancelled,
    AppointmentCreated,
    AppointmentEvent,
    AppointmentRescheduled,
)
from vetclinic.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AvailabilityResponse,
    DailySlotsResponse,
    PatientSummary,
    SlotState,
    TimeSlot,
    VeterinarianSummary,
)
from vetclinic.schemas.users import PatientResponse, UserResponse, UserRole
from vetclinic.services.appointment_store import AppointmentStore
from vetclinic.services.directory_service import DirectoryService
from vetclinic.services.scheduling_policy import SchedulingPolicy

logger = structlog.get_logger(__name__)


def _join_name(first: str | None, last: str | None) -> str | None:
    name = " ".join(part for part in (first, last) if part)
    return name or None


class AppointmentService:
    """
    Service for managing the appointment lifecycle.

    Every mutating operation runs its checks and its write inside one
    transaction, commits once, and only then publishes its lifecycle event.
    Scheduling and rescheduling lock the veterinarian row before the overlap
    check, and the owner row before it when a per-day limit applies, so
    concurrent bookings cannot both pass either check. Whether the
    veterinarian is bookable is decided from that locked row, never from the
    directory cache.
    """

    def __init__(
        self,
        db: AsyncSession,
        events: EventBus | None = None,
        policy: SchedulingPolicy | None = None,
        clock: Clock | None = None,
        cache: CacheManager | None = None,
    ):
        """Initialize service with database session and collaborators."""
        self.db = db
        self.events = events
        self.policy = policy or SchedulingPolicy.from_settings(settings)
        self.clock = clock or utcnow
        self.store = AppointmentStore(db)
        self.directory = DirectoryService(db, cache)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    def _now(self) -> datetime:
        return as_utc(self.clock())

    # Lifecycle operations

    async def schedule(
        self,
        data: AppointmentCreate,
        actor: UserResponse | None = None,
    ) -> AppointmentResponse:
        """
        Schedule a new appointment.

        Args:
            data: Appointment creation data
            actor: Authenticated user performing the booking

        Returns:
            Created appointment

        Raises:
            NotFoundException: If the patient or veterinarian does not exist
            ForbiddenException: If a client books for a patient they do not own
            InvalidStateException: If the time is in the past or breaks a booking rule
            ConflictException: If the veterinarian already has an appointment too close
        """
        actor_id = actor.id if actor else None
        scheduled_at = as_utc(data.scheduled_at)

        async with self._transaction():
            patient = await self.directory.get_patient(data.patient_id)
            self._check_ownership(patient, actor)
            veterinarian_id = data.veterinarian_id

            if self._limits_per_day(patient):
                await self.store.lock_owner(patient.owner_id)
            await self._lock_active_veterinarian(veterinarian_id)

            now = self._now()
            self.policy.validate_booking_time(scheduled_at, now)
            await self._check_daily_limit(patient, scheduled_at)
            await self._ensure_no_conflict(veterinarian_id, scheduled_at)

            appointment_id = await self.store.insert(
                {
                    "patient_id": patient.id,
                    "veterinarian_id": veterinarian_id,
                    "scheduled_at": scheduled_at,
                    "service_type": data.service_type,
                    "reason": data.reason,
                    "triage_level": data.triage_level,
                    "status": AppointmentStatus.SCHEDULED.value,
                },
                actor_id,
                now,
            )

        logger.info(
            "appointment_scheduled",
            appointment_id=str(appointment_id),
            patient_id=str(patient.id),
            veterinarian_id=str(veterinarian_id),
            scheduled_at=scheduled_at.isoformat(),
        )

        await self._emit(
            AppointmentCreated,
            appointment_id,
            patient,
            veterinarian_id,
            scheduled_at=scheduled_at,
            service_type=data.service_type,
        )

        return await self._get_response(appointment_id)

    async def reschedule(
        self,
        appointment_id: UUID,
        new_scheduled_at: datetime,
        actor: UserResponse | None = None,
    ) -> AppointmentResponse:
        """
        Move a scheduled appointment to a new time.

        The appointment being moved is ignored by the overlap check.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a client moves another owner's appointment
            InvalidStateException: NOT_SCHEDULED, PAST_DATE_TIME or a booking rule
            ConflictException: If the new time is too close to another appointment
        """
        actor_id = actor.id if actor else None
        new_scheduled_at = as_utc(new_scheduled_at)

        async with self._transaction():
            current = await self._get_for_update(appointment_id)
            patient = await self.directory.get_patient(current["patient_id"])
            self._check_ownership(patient, actor)

            if current["status"] != AppointmentStatus.SCHEDULED.value:
                raise InvalidStateException(
                    f"Only scheduled appointments can be rescheduled (status is {current['status']})",
                    code="NOT_SCHEDULED",
                    appointment_id=str(appointment_id),
                    status=current["status"],
                )

            now = self._now()
            self.policy.validate_booking_time(new_scheduled_at, now)
            changes_day = self.policy.local_day_bounds(
                new_scheduled_at
            ) != self.policy.local_day_bounds(current["scheduled_at"])

            veterinarian_id = current["veterinarian_id"]
            if changes_day and self._limits_per_day(patient):
                await self.store.lock_owner(patient.owner_id)
            await self.store.lock_veterinarian(veterinarian_id)

            if changes_day:
                await self._check_daily_limit(patient, new_scheduled_at)
            await self._ensure_no_conflict(
                veterinarian_id, new_scheduled_at, exclude_id=appointment_id
            )

            await self.store.update(
                appointment_id, {"scheduled_at": new_scheduled_at}, actor_id, now
            )

        previous_scheduled_at = current["scheduled_at"]
        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            previous_scheduled_at=previous_scheduled_at.isoformat(),
            scheduled_at=new_scheduled_at.isoformat(),
        )

        await self._emit(
            AppointmentRescheduled,
            appointment_id,
            patient,
            veterinarian_id,
            previous_scheduled_at=previous_scheduled_at,
            scheduled_at=new_scheduled_at,
        )

        return await self._get_response(appointment_id)

    async def cancel(
        self,
        appointment_id: UUID,
        reason: str,
        actor: UserResponse | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment.

        Status, reason and cancellation time are written in a single UPDATE.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a client cancels another owner's appointment
            InvalidStateException: ALREADY_COMPLETED, ALREADY_CANCELLED or INSUFFICIENT_NOTICE
        """
        actor_id = actor.id if actor else None

        async with self._transaction():
            current = await self._get_for_update(appointment_id)
            patient = await self.directory.get_patient(current["patient_id"])
            self._check_ownership(patient, actor)

            if current["status"] == AppointmentStatus.COMPLETED.value:
                raise InvalidStateException(
                    "Completed appointments cannot be cancelled",
                    code="ALREADY_COMPLETED",
                    appointment_id=str(appointment_id),
                )
            if current["status"] == AppointmentStatus.CANCELLED.value:
                raise InvalidStateException(
                    "Appointment is already cancelled",
                    code="ALREADY_CANCELLED",
                    appointment_id=str(appointment_id),
                )

            now = self._now()
            self.policy.validate_cancellation(current["scheduled_at"], now)

            await self.store.update(
                appointment_id,
                {
                    "status": AppointmentStatus.CANCELLED.value,
                    "cancellation_reason": reason,
                    "cancelled_at": now,
                },
                actor_id,
                now,
            )

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            reason=reason,
        )

        await self._emit(
            AppointmentCancelled,
            appointment_id,
            patient,
            current["veterinarian_id"],
            scheduled_at=current["scheduled_at"],
            cancellation_reason=reason,
        )

        return await self._get_response(appointment_id)

    async def complete(
        self,
        appointment_id: UUID,
        actor: UserResponse | None = None,
    ) -> AppointmentResponse:
        """
        Mark a scheduled appointment as completed.

        Raises:
            NotFoundException: If appointment not found
            InvalidStateException: If the appointment is not scheduled
        """
        actor_id = actor.id if actor else None

        async with self._transaction():
            current = await self._get_for_update(appointment_id)

            if current["status"] != AppointmentStatus.SCHEDULED.value:
                raise InvalidStateException(
                    f"Only scheduled appointments can be completed (status is {current['status']})",
                    code="NOT_SCHEDULED",
                    appointment_id=str(appointment_id),
                    status=current["status"],
                )

            now = self._now()
            await self.store.update(
                appointment_id,
                {"status": AppointmentStatus.COMPLETED.value, "completed_at": now},
                actor_id,
                now,
            )

        logger.info("appointment_completed", appointment_id=str(appointment_id))
        return await self._get_response(appointment_id)

    # Queries

    async def get(
        self,
        appointment_id: UUID,
        actor: UserResponse | None = None,
    ) -> AppointmentResponse:
        """
        Get an appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a client reads another owner's appointment
        """
        detail = await self.store.get_detail(appointment_id)
        if not detail:
            raise NotFoundException("Appointment not found", appointment_id=str(appointment_id))

        if actor and actor.role == UserRole.CLIENT:
            patient = await self.directory.get_patient(detail["patient_id"])
            self._check_ownership(patient, actor)

        return self._to_response(detail)

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments, latest first
        """
        total, rows = await self.store.list_appointments(filters)
        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[self._to_response(row) for row in rows],
        )

    async def list_for_patient(
        self,
        patient_id: UUID,
        actor: UserResponse | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> AppointmentListResponse:
        """List a patient's appointments; clients only see their own patients."""
        patient = await self.directory.get_patient(patient_id)
        self._check_ownership(patient, actor)
        return await self.list_appointments(
            AppointmentFilters(patient_id=patient_id, page=page, page_size=page_size)
        )

    async def list_for_veterinarian(
        self,
        veterinarian_id: UUID,
        page: int = 1,
        page_size: int = 20,
    ) -> AppointmentListResponse:
        """List a veterinarian's appointments."""
        await self.directory.get_veterinarian(veterinarian_id)
        return await self.list_appointments(
            AppointmentFilters(veterinarian_id=veterinarian_id, page=page, page_size=page_size)
        )

    async def check_availability(
        self,
        veterinarian_id: UUID,
        scheduled_at: datetime,
    ) -> AvailabilityResponse:
        """
        Whether a veterinarian could take an appointment at a given time.

        A time at or before now is never available.
        """
        await self.directory.get_veterinarian(veterinarian_id)
        scheduled_at = as_utc(scheduled_at)

        available = scheduled_at > self._now()
        if available:
            window_start, window_end = self.policy.conflict_bounds(scheduled_at)
            conflicts = await self.store.find_conflicting(veterinarian_id, window_start, window_end)
            available = not conflicts

        return AvailabilityResponse(
            veterinarian_id=veterinarian_id,
            scheduled_at=scheduled_at,
            available=available,
        )

    async def daily_slots(self, veterinarian_id: UUID, day: date) -> DailySlotsResponse:
        """
        Bookable slots of a veterinarian on a clinic-local day.

        A slot is occupied when a scheduled appointment starts inside it.
        """
        await self.directory.get_veterinarian(veterinarian_id)

        step = timedelta(minutes=self.policy.slot_minutes)
        day_start, day_end = self.policy.day_bounds(day)
        booked = await self.store.list_scheduled_between(veterinarian_id, day_start, day_end)

        slots = []
        for starts_at in self.policy.slots_for_day(day):
            occupant = next(
                (row for row in booked if starts_at <= row["scheduled_at"] < starts_at + step),
                None,
            )
            slots.append(
                TimeSlot(
                    starts_at=starts_at,
                    duration_minutes=self.policy.slot_minutes,
                    available=occupant is None,
                    state=SlotState.AVAILABLE if occupant is None else SlotState.OCCUPIED,
                    appointment_id=occupant["id"] if occupant else None,
                    patient_name=occupant["patient_name"] if occupant else None,
                )
            )

        return DailySlotsResponse(veterinarian_id=veterinarian_id, date=day, slots=slots)

    # Helpers

    async def _get_for_update(self, appointment_id: UUID) -> dict[str, Any]:
        current = await self.store.find_by_id(appointment_id, for_update=True)
        if not current:
            raise NotFoundException("Appointment not found", appointment_id=str(appointment_id))
        return current

    async def _get_response(self, appointment_id: UUID) -> AppointmentResponse:
        detail = await self.store.get_detail(appointment_id)
        if not detail:
            raise NotFoundException("Appointment not found", appointment_id=str(appointment_id))
        return self._to_response(detail)

    @staticmethod
    def _check_ownership(patient: PatientResponse, actor: UserResponse | None) -> None:
        if actor and actor.role == UserRole.CLIENT and patient.owner_id != actor.id:
            raise ForbiddenException("Clients can only manage appointments of their own pets")

    async def _lock_active_veterinarian(self, veterinarian_id: UUID) -> None:
        row = await self.store.lock_veterinarian(veterinarian_id)
        if row is None or row["role"] != UserRole.VETERINARIAN.value or not row["is_active"]:
            raise NotFoundException("Veterinarian not found", veterinarian_id=str(veterinarian_id))

    def _limits_per_day(self, patient: PatientResponse) -> bool:
        return self.policy.max_per_client_per_day > 0 and patient.owner_id is not None

    async def _check_daily_limit(self, patient: PatientResponse, scheduled_at: datetime) -> None:
        if not self._limits_per_day(patient):
            return
        limit = self.policy.max_per_client_per_day

        day_start, day_end = self.policy.local_day_bounds(scheduled_at)
        booked = await self.store.count_scheduled_for_owner(patient.owner_id, day_start, day_end)
        if booked >= limit:
            raise InvalidStateException(
                f"A client can hold at most {limit} appointments per day",
                code="DAILY_LIMIT_REACHED",
                owner_id=str(patient.owner_id),
                limit=limit,
            )

    async def _ensure_no_conflict(
        self,
        veterinarian_id: UUID,
        scheduled_at: datetime,
        exclude_id: UUID | None = None,
    ) -> None:
        window_start, window_end = self.policy.conflict_bounds(scheduled_at)
        conflicts = await self.store.find_conflicting(
            veterinarian_id, window_start, window_end, exclude_id=exclude_id
        )
        if not conflicts:
            return

        conflicting = conflicts[0]
        logger.info(
            "appointment_conflict",
            veterinarian_id=str(veterinarian_id),
            scheduled_at=scheduled_at.isoformat(),
            conflicting_appointment_id=str(conflicting["id"]),
        )
        raise ConflictException(
            "The veterinarian already has an appointment close to this time",
            code="SCHEDULING_OVERLAP",
            conflicting_appointment_id=str(conflicting["id"]),
            conflicting_scheduled_at=conflicting["scheduled_at"].isoformat(),
        )

    async def _emit(
        self,
        event_cls: type[AppointmentEvent],
        appointment_id: UUID,
        patient: PatientResponse,
        veterinarian_id: UUID,
        **fields: Any,
    ) -> None:
        if self.events is None:
            return
        try:
            client = await self.directory.get_user(patient.owner_id) if patient.owner_id else None
            veterinarian = await self.directory.get_user(veterinarian_id)
            event = event_cls(
                appointment_id=appointment_id,
                patient_id=patient.id,
                veterinarian_id=veterinarian_id,
                client_id=client.id if client else None,
                client_name=client.full_name if client else None,
                client_email=client.email if client else None,
                client_phone=client.phone if client else None,
                patient_name=patient.name,
                veterinarian_name=f"Dr. {veterinarian.full_name}" if veterinarian else None,
                **fields,
            )
            self.events.publish(event)
        except Exception as e:
            logger.warning(
                "event_publish_failed",
                event_type=event_cls.__name__,
                appointment_id=str(appointment_id),
                error=str(e),
            )

    @staticmethod
    def _to_response(detail: dict[str, Any]) -> AppointmentResponse:
        patient = PatientSummary(
            id=detail["patient_id"],
            name=detail.get("patient_name"),
            species=detail.get("patient_species"),
            owner_name=_join_name(detail.get("owner_first_name"), detail.get("owner_last_name")),
        )
        veterinarian = VeterinarianSummary(
            id=detail["veterinarian_id"],
            full_name=_join_name(detail.get("vet_first_name"), detail.get("vet_last_name")),
            specialty=detail.get("vet_specialty"),
        )
        return AppointmentResponse.model_validate(
            {**detail, "patient": patient, "veterinarian": veterinarian}
        )
