"""Tests for the appointment lifecycle service."""

from datetime import UTC, datetime, time, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from vetclinic.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
)
from vetclinic.core.redis_client import CacheManager
from vetclinic.events.schemas import (
    AppointmentCancelled,
    AppointmentCreated,
    AppointmentRescheduled,
)
from vetclinic.models.appointments import appointments
from vetclinic.models.users import users
from vetclinic.schemas.appointments import AppointmentCreate, AppointmentFilters, SlotState
from vetclinic.services.appointment_service import AppointmentService
from vetclinic.services.scheduling_policy import SchedulingPolicy


def drain(event_bus) -> list:
    """Collect the events a bus queued for its consumers."""
    events = []
    for subscription in event_bus._subscriptions:
        while not subscription.queue.empty():
            events.append(subscription.queue.get_nowait())
    return events


@pytest.fixture
def recorded_events(event_bus):
    """Subscribe a no-op consumer so published events are queued."""

    async def handler(event):
        return None

    event_bus.subscribe("recorder", handler)
    return event_bus


@pytest.fixture
def service(db_session, recorded_events, policy) -> AppointmentService:
    return AppointmentService(db_session, events=recorded_events, policy=policy)


def booking(patient, veterinarian, when, **extra) -> AppointmentCreate:
    return AppointmentCreate(
        patient_id=patient.id,
        veterinarian_id=veterinarian.id,
        scheduled_at=when,
        **extra,
    )


async def count_appointments(db_session) -> int:
    result = await db_session.execute(select(appointments.c.id))
    return len(result.all())


# Schedule


async def test_schedule_creates_scheduled_appointment(
    service, patient, veterinarian, secretary, tomorrow, recorded_events
):
    result = await service.schedule(
        booking(patient, veterinarian, tomorrow, service_type="consultation"),
        actor=secretary,
    )

    assert result.status == "scheduled"
    assert result.scheduled_at == tomorrow
    assert result.created_by == secretary.id
    assert result.updated_by == secretary.id
    assert result.patient.name == "Rocky"
    assert result.patient.owner_name == "Luis Gomez"
    assert result.veterinarian.full_name == "Ana Torres"

    events = drain(recorded_events)
    assert len(events) == 1
    event = events[0]
    assert isinstance(event, AppointmentCreated)
    assert event.appointment_id == result.id
    assert event.client_name == "Luis Gomez"
    assert event.veterinarian_name == "Dr. Ana Torres"
    assert event.service_type == "consultation"


async def test_schedule_in_the_past_fails_and_creates_nothing(
    service, db_session, patient, veterinarian, tomorrow, recorded_events
):
    with pytest.raises(InvalidStateException) as exc_info:
        await service.schedule(booking(patient, veterinarian, tomorrow - timedelta(days=2)))

    assert exc_info.value.code == "PAST_DATE_TIME"
    assert await count_appointments(db_session) == 0
    assert drain(recorded_events) == []


async def test_schedule_at_exactly_now_fails(db_session, patient, veterinarian, tomorrow):
    service = AppointmentService(db_session, clock=lambda: tomorrow)

    with pytest.raises(InvalidStateException) as exc_info:
        await service.schedule(booking(patient, veterinarian, tomorrow))
    assert exc_info.value.code == "PAST_DATE_TIME"


async def test_schedule_unknown_patient(service, veterinarian, tomorrow):
    data = AppointmentCreate(
        patient_id=uuid4(), veterinarian_id=veterinarian.id, scheduled_at=tomorrow
    )
    with pytest.raises(NotFoundException, match="Patient not found"):
        await service.schedule(data)


async def test_schedule_unknown_veterinarian(service, patient, tomorrow):
    data = AppointmentCreate(patient_id=patient.id, veterinarian_id=uuid4(), scheduled_at=tomorrow)
    with pytest.raises(NotFoundException, match="Veterinarian not found"):
        await service.schedule(data)


async def test_schedule_with_non_veterinarian(service, patient, secretary, tomorrow):
    with pytest.raises(NotFoundException, match="Veterinarian not found"):
        await service.schedule(booking(patient, secretary, tomorrow))


async def test_schedule_with_inactive_veterinarian(service, make_user, patient, tomorrow):
    retired = await make_user("veterinarian", is_active=False)
    with pytest.raises(NotFoundException):
        await service.schedule(booking(patient, retired, tomorrow))


async def test_conflict_within_window_for_same_veterinarian(
    service, db_session, patient, second_patient, veterinarian, tomorrow
):
    first = await service.schedule(booking(patient, veterinarian, tomorrow))

    with pytest.raises(ConflictException) as exc_info:
        await service.schedule(
            booking(second_patient, veterinarian, tomorrow + timedelta(minutes=10))
        )

    exc = exc_info.value
    assert exc.status_code == 409
    assert exc.code == "SCHEDULING_OVERLAP"
    assert exc.details["conflicting_appointment_id"] == str(first.id)
    assert await count_appointments(db_session) == 1


async def test_same_time_with_different_veterinarians(
    service, patient, second_patient, veterinarian, other_veterinarian, tomorrow
):
    first = await service.schedule(booking(patient, veterinarian, tomorrow))
    second = await service.schedule(booking(second_patient, other_veterinarian, tomorrow))
    assert first.status == second.status == "scheduled"


@pytest.mark.parametrize("minutes", [30, -30, 45])
async def test_window_bounds_are_exclusive(
    service, patient, second_patient, veterinarian, tomorrow, minutes
):
    await service.schedule(booking(patient, veterinarian, tomorrow))
    result = await service.schedule(
        booking(second_patient, veterinarian, tomorrow + timedelta(minutes=minutes))
    )
    assert result.status == "scheduled"


async def test_first_conflict_by_time_is_reported(
    db_session, patient, second_patient, make_patient, client_user, veterinarian, tomorrow
):
    default_window = AppointmentService(db_session, policy=SchedulingPolicy())
    early = await default_window.schedule(booking(patient, veterinarian, tomorrow))
    await default_window.schedule(
        booking(second_patient, veterinarian, tomorrow + timedelta(minutes=40))
    )

    wide_window = AppointmentService(
        db_session, policy=SchedulingPolicy(conflict_window=timedelta(minutes=60))
    )
    third = await make_patient(client_user, name="Milo")
    with pytest.raises(ConflictException) as exc_info:
        await wide_window.schedule(booking(third, veterinarian, tomorrow + timedelta(minutes=20)))
    assert exc_info.value.details["conflicting_appointment_id"] == str(early.id)


async def test_cancelled_appointments_do_not_conflict(
    service, patient, second_patient, veterinarian, tomorrow
):
    first = await service.schedule(booking(patient, veterinarian, tomorrow))
    await service.cancel(first.id, "owner travelling")

    result = await service.schedule(booking(second_patient, veterinarian, tomorrow))
    assert result.status == "scheduled"


async def test_client_cannot_book_for_another_owners_pet(
    service, make_user, make_patient, client_user, veterinarian, tomorrow
):
    stranger = await make_user("client")
    foreign_pet = await make_patient(stranger, name="Kira")

    with pytest.raises(ForbiddenException):
        await service.schedule(booking(foreign_pet, veterinarian, tomorrow), actor=client_user)


async def test_client_can_book_for_own_pet(service, patient, veterinarian, client_user, tomorrow):
    result = await service.schedule(booking(patient, veterinarian, tomorrow), actor=client_user)
    assert result.created_by == client_user.id


async def test_daily_limit_per_client(
    db_session, patient, veterinarian, other_veterinarian, tomorrow
):
    service = AppointmentService(db_session, policy=SchedulingPolicy(max_per_client_per_day=1))
    await service.schedule(booking(patient, veterinarian, tomorrow))

    with pytest.raises(InvalidStateException) as exc_info:
        await service.schedule(
            booking(patient, other_veterinarian, tomorrow + timedelta(hours=2))
        )
    assert exc_info.value.code == "DAILY_LIMIT_REACHED"


async def test_minimum_notice_on_schedule(db_session, patient, veterinarian, tomorrow):
    service = AppointmentService(
        db_session,
        policy=SchedulingPolicy(min_lead=timedelta(hours=2)),
        clock=lambda: tomorrow - timedelta(hours=1),
    )
    with pytest.raises(InvalidStateException) as exc_info:
        await service.schedule(booking(patient, veterinarian, tomorrow))
    assert exc_info.value.code == "INSUFFICIENT_NOTICE"


async def test_deactivated_veterinarian_rejected_despite_warm_cache(
    db_session, patient, veterinarian, tomorrow
):
    store: dict[str, str] = {}
    mock_redis = MagicMock()
    mock_redis.get.side_effect = store.get
    mock_redis.setex.side_effect = lambda key, ttl, value: store.__setitem__(key, value)
    service = AppointmentService(db_session, cache=CacheManager(redis_client=mock_redis))

    await service.schedule(booking(patient, veterinarian, tomorrow))
    await service.directory.get_veterinarian(veterinarian.id)
    assert f"user:{veterinarian.id}" in store

    await db_session.execute(
        update(users).where(users.c.id == veterinarian.id).values(is_active=False)
    )
    await db_session.commit()

    with pytest.raises(NotFoundException, match="Veterinarian not found"):
        await service.schedule(booking(patient, veterinarian, tomorrow + timedelta(hours=3)))
    assert await count_appointments(db_session) == 1


def record_store_calls(monkeypatch, service: AppointmentService, *names: str) -> list[str]:
    """Wrap store methods so the order they are awaited in is recorded."""
    calls: list[str] = []
    for name in names:
        original = getattr(service.store, name)

        def wrapper(*args, _name=name, _original=original, **kwargs):
            calls.append(_name)
            return _original(*args, **kwargs)

        monkeypatch.setattr(service.store, name, wrapper)
    return calls


async def test_schedule_locks_veterinarian_before_conflict_check(
    monkeypatch, service, patient, veterinarian, tomorrow
):
    calls = record_store_calls(
        monkeypatch, service, "lock_owner", "lock_veterinarian", "find_conflicting", "insert"
    )

    await service.schedule(booking(patient, veterinarian, tomorrow))

    assert calls == ["lock_veterinarian", "find_conflicting", "insert"]


async def test_reschedule_locks_veterinarian_before_conflict_check(
    monkeypatch, service, patient, veterinarian, tomorrow
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    calls = record_store_calls(
        monkeypatch, service, "lock_veterinarian", "find_conflicting", "update"
    )

    await service.reschedule(created.id, tomorrow + timedelta(hours=2))

    assert calls == ["lock_veterinarian", "find_conflicting", "update"]


async def test_daily_limit_locks_owner_before_veterinarian(
    monkeypatch, db_session, patient, veterinarian, tomorrow
):
    service = AppointmentService(db_session, policy=SchedulingPolicy(max_per_client_per_day=2))
    calls = record_store_calls(
        monkeypatch,
        service,
        "lock_owner",
        "lock_veterinarian",
        "count_scheduled_for_owner",
        "find_conflicting",
    )

    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    assert calls == [
        "lock_owner",
        "lock_veterinarian",
        "count_scheduled_for_owner",
        "find_conflicting",
    ]

    calls.clear()
    await service.reschedule(created.id, tomorrow + timedelta(days=1))
    assert calls == [
        "lock_owner",
        "lock_veterinarian",
        "count_scheduled_for_owner",
        "find_conflicting",
    ]


# Reschedule


async def test_reschedule_moves_appointment(
    service, patient, veterinarian, secretary, tomorrow, recorded_events
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    drain(recorded_events)

    new_time = tomorrow + timedelta(days=1)
    result = await service.reschedule(created.id, new_time, actor=secretary)

    assert result.scheduled_at == new_time
    assert result.status == "scheduled"
    assert result.updated_by == secretary.id

    events = drain(recorded_events)
    assert len(events) == 1
    assert isinstance(events[0], AppointmentRescheduled)
    assert events[0].previous_scheduled_at == tomorrow
    assert events[0].scheduled_at == new_time


async def test_reschedule_ignores_itself_in_conflict_check(
    service, patient, veterinarian, tomorrow
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    result = await service.reschedule(created.id, tomorrow + timedelta(minutes=10))
    assert result.scheduled_at == tomorrow + timedelta(minutes=10)


async def test_reschedule_into_conflict(
    service, patient, second_patient, veterinarian, tomorrow
):
    await service.schedule(booking(patient, veterinarian, tomorrow))
    other = await service.schedule(
        booking(second_patient, veterinarian, tomorrow + timedelta(hours=3))
    )

    with pytest.raises(ConflictException):
        await service.reschedule(other.id, tomorrow + timedelta(minutes=15))

    unchanged = await service.get(other.id)
    assert unchanged.scheduled_at == tomorrow + timedelta(hours=3)


async def test_reschedule_into_the_past(service, patient, veterinarian, tomorrow):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    with pytest.raises(InvalidStateException) as exc_info:
        await service.reschedule(created.id, tomorrow - timedelta(days=2))
    assert exc_info.value.code == "PAST_DATE_TIME"


@pytest.mark.parametrize("finish", ["complete", "cancel"])
async def test_reschedule_finished_appointment_fails_and_leaves_it_unchanged(
    service, patient, veterinarian, tomorrow, finish
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    if finish == "complete":
        finished = await service.complete(created.id)
    else:
        finished = await service.cancel(created.id, "no longer needed")

    with pytest.raises(InvalidStateException) as exc_info:
        await service.reschedule(created.id, tomorrow + timedelta(days=3))
    assert exc_info.value.code == "NOT_SCHEDULED"

    after = await service.get(created.id)
    assert after.status == finished.status
    assert after.scheduled_at == tomorrow
    assert after.updated_at == finished.updated_at


async def test_reschedule_unknown_appointment(service, tomorrow):
    with pytest.raises(NotFoundException):
        await service.reschedule(uuid4(), tomorrow)


async def test_client_cannot_reschedule_another_owners_appointment(
    service, make_user, patient, veterinarian, tomorrow
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    stranger = await make_user("client")

    with pytest.raises(ForbiddenException):
        await service.reschedule(created.id, tomorrow + timedelta(days=1), actor=stranger)


# Cancel


async def test_cancel_sets_status_and_reason_together(
    service, db_session, patient, veterinarian, client_user, tomorrow, recorded_events
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    drain(recorded_events)

    result = await service.cancel(created.id, "no longer needed", actor=client_user)

    assert result.status == "cancelled"
    assert result.cancellation_reason == "no longer needed"
    assert result.cancelled_at is not None
    assert result.updated_by == client_user.id

    row = (
        await db_session.execute(select(appointments).where(appointments.c.id == created.id))
    ).mappings().one()
    assert row["status"] == "cancelled"
    assert row["cancellation_reason"] == "no longer needed"

    events = drain(recorded_events)
    assert len(events) == 1
    assert isinstance(events[0], AppointmentCancelled)
    assert events[0].cancellation_reason == "no longer needed"
    assert events[0].scheduled_at == tomorrow


async def test_cancel_twice_is_rejected(service, patient, veterinarian, tomorrow, recorded_events):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    await service.cancel(created.id, "first")
    drain(recorded_events)

    with pytest.raises(InvalidStateException) as exc_info:
        await service.cancel(created.id, "second")
    assert exc_info.value.code == "ALREADY_CANCELLED"

    after = await service.get(created.id)
    assert after.cancellation_reason == "first"
    assert drain(recorded_events) == []


async def test_cancel_completed_is_rejected(service, patient, veterinarian, tomorrow):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    await service.complete(created.id)

    with pytest.raises(InvalidStateException) as exc_info:
        await service.cancel(created.id, "too late")
    assert exc_info.value.code == "ALREADY_COMPLETED"


async def test_cancel_unknown_appointment(service):
    with pytest.raises(NotFoundException):
        await service.cancel(uuid4(), "whatever")


async def test_cancel_with_short_notice(db_session, patient, veterinarian, tomorrow):
    policy = SchedulingPolicy(min_lead=timedelta(hours=2))
    early = AppointmentService(db_session, policy=policy, clock=lambda: tomorrow - timedelta(days=1))
    created = await early.schedule(booking(patient, veterinarian, tomorrow))

    late = AppointmentService(db_session, policy=policy, clock=lambda: tomorrow - timedelta(hours=1))
    with pytest.raises(InvalidStateException) as exc_info:
        await late.cancel(created.id, "last minute")
    assert exc_info.value.code == "INSUFFICIENT_NOTICE"


# Complete


async def test_complete_twice_is_rejected(
    service, patient, veterinarian, tomorrow, recorded_events
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    drain(recorded_events)

    completed = await service.complete(created.id, actor=veterinarian)
    assert completed.status == "completed"
    assert completed.completed_at is not None

    with pytest.raises(InvalidStateException) as exc_info:
        await service.complete(created.id, actor=veterinarian)
    assert exc_info.value.code == "NOT_SCHEDULED"

    after = await service.get(created.id)
    assert after.status == "completed"
    assert after.completed_at == completed.completed_at
    assert drain(recorded_events) == []


async def test_complete_cancelled_is_rejected(service, patient, veterinarian, tomorrow):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))
    await service.cancel(created.id, "sick")

    with pytest.raises(InvalidStateException):
        await service.complete(created.id)


# Full lifecycle


async def test_lifecycle_scenario(service, patient, second_patient, veterinarian, tomorrow):
    appointment = await service.schedule(booking(patient, veterinarian, tomorrow))
    assert appointment.status == "scheduled"

    with pytest.raises(ConflictException):
        await service.schedule(
            booking(second_patient, veterinarian, tomorrow + timedelta(minutes=10))
        )

    moved = await service.reschedule(appointment.id, tomorrow + timedelta(days=1))
    assert moved.scheduled_at == tomorrow + timedelta(days=1)
    assert moved.status == "scheduled"

    completed = await service.complete(appointment.id)
    assert completed.status == "completed"

    with pytest.raises(InvalidStateException) as exc_info:
        await service.cancel(appointment.id, "no longer needed")
    assert exc_info.value.code == "ALREADY_COMPLETED"


# Queries


async def test_get_enforces_client_ownership(
    service, make_user, patient, veterinarian, client_user, tomorrow
):
    created = await service.schedule(booking(patient, veterinarian, tomorrow))

    own = await service.get(created.id, actor=client_user)
    assert own.id == created.id

    stranger = await make_user("client")
    with pytest.raises(ForbiddenException):
        await service.get(created.id, actor=stranger)


async def test_list_filters(service, patient, second_patient, veterinarian, other_veterinarian, tomorrow):
    first = await service.schedule(booking(patient, veterinarian, tomorrow))
    await service.schedule(booking(second_patient, other_veterinarian, tomorrow))
    await service.cancel(first.id, "changed plans")

    everything = await service.list_appointments(AppointmentFilters())
    assert everything.total == 2

    cancelled = await service.list_appointments(AppointmentFilters(status="cancelled"))
    assert [item.id for item in cancelled.items] == [first.id]

    by_vet = await service.list_for_veterinarian(other_veterinarian.id)
    assert by_vet.total == 1
    assert by_vet.items[0].veterinarian_id == other_veterinarian.id

    by_patient = await service.list_for_patient(patient.id)
    assert by_patient.total == 1


async def test_list_pagination_latest_first(service, patient, veterinarian, tomorrow):
    for day in range(3):
        await service.schedule(booking(patient, veterinarian, tomorrow + timedelta(days=day)))

    page = await service.list_appointments(AppointmentFilters(page=1, page_size=2))
    assert page.total == 3
    assert len(page.items) == 2
    assert page.items[0].scheduled_at == tomorrow + timedelta(days=2)


async def test_check_availability(service, patient, veterinarian, tomorrow):
    await service.schedule(booking(patient, veterinarian, tomorrow))

    busy = await service.check_availability(veterinarian.id, tomorrow + timedelta(minutes=5))
    assert busy.available is False

    free = await service.check_availability(veterinarian.id, tomorrow + timedelta(hours=1))
    assert free.available is True

    past = await service.check_availability(veterinarian.id, tomorrow - timedelta(days=2))
    assert past.available is False


async def test_daily_slots(db_session, patient, veterinarian):
    today = datetime.now(UTC).date()
    monday = today + timedelta(days=7 - today.weekday())
    service = AppointmentService(db_session, policy=SchedulingPolicy())

    await service.schedule(
        booking(patient, veterinarian, datetime.combine(monday, time(8, 10), tzinfo=UTC))
    )

    result = await service.daily_slots(veterinarian.id, monday)
    assert len(result.slots) == 16
    assert result.slots[0].state == SlotState.OCCUPIED
    assert result.slots[0].available is False
    assert result.slots[0].patient_name == "Rocky"
    assert all(slot.available for slot in result.slots[1:])

    sunday = await service.daily_slots(veterinarian.id, monday - timedelta(days=1))
    assert sunday.slots == []


async def test_queries_for_unknown_veterinarian(service, tomorrow):
    with pytest.raises(NotFoundException):
        await service.check_availability(uuid4(), tomorrow)
    with pytest.raises(NotFoundException):
        await service.daily_slots(uuid4(), tomorrow.date())


async def test_publish_failure_does_not_fail_the_operation(
    db_session, patient, veterinarian, tomorrow
):
    class BrokenBus:
        def publish(self, event):
            raise RuntimeError("queue unavailable")

    service = AppointmentService(db_session, events=BrokenBus())
    result = await service.schedule(booking(patient, veterinarian, tomorrow))
    assert result.status == "scheduled"
