"""Tests for booking time rules."""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from vetclinic.config import Settings
from vetclinic.core.exceptions import InvalidStateException
from vetclinic.services.scheduling_policy import SchedulingPolicy

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)  # a Monday


def test_conflict_bounds_are_symmetric():
    policy = SchedulingPolicy(conflict_window=timedelta(minutes=30))
    start, end = policy.conflict_bounds(NOW)
    assert start == NOW - timedelta(minutes=30)
    assert end == NOW + timedelta(minutes=30)


def test_conflict_bounds_treat_naive_times_as_utc():
    policy = SchedulingPolicy()
    start, _ = policy.conflict_bounds(NOW.replace(tzinfo=None))
    assert start.tzinfo is not None
    assert start == NOW - timedelta(minutes=30)


@pytest.mark.parametrize("offset", [timedelta(0), -timedelta(minutes=1)])
def test_time_at_or_before_now_is_rejected(offset):
    policy = SchedulingPolicy()
    with pytest.raises(InvalidStateException) as exc_info:
        policy.validate_booking_time(NOW + offset, NOW)
    assert exc_info.value.code == "PAST_DATE_TIME"
    assert exc_info.value.status_code == 422


def test_future_time_is_accepted_by_default():
    SchedulingPolicy().validate_booking_time(NOW + timedelta(seconds=1), NOW)


def test_minimum_notice_is_enforced():
    policy = SchedulingPolicy(min_lead=timedelta(hours=2))
    with pytest.raises(InvalidStateException) as exc_info:
        policy.validate_booking_time(NOW + timedelta(hours=1, minutes=59), NOW)
    assert exc_info.value.code == "INSUFFICIENT_NOTICE"
    assert "2 hours" in exc_info.value.message

    policy.validate_booking_time(NOW + timedelta(hours=2), NOW)


def test_cancellation_notice():
    policy = SchedulingPolicy(min_lead=timedelta(hours=2))
    with pytest.raises(InvalidStateException) as exc_info:
        policy.validate_cancellation(NOW + timedelta(hours=1), NOW)
    assert exc_info.value.code == "INSUFFICIENT_NOTICE"

    policy.validate_cancellation(NOW + timedelta(hours=3), NOW)
    SchedulingPolicy().validate_cancellation(NOW - timedelta(hours=1), NOW)


@pytest.mark.parametrize(
    ("moment", "expected"),
    [
        (datetime(2026, 3, 2, 8, 0, tzinfo=UTC), True),
        (datetime(2026, 3, 2, 12, 0, tzinfo=UTC), True),
        (datetime(2026, 3, 2, 12, 30, tzinfo=UTC), False),
        (datetime(2026, 3, 2, 14, 0, tzinfo=UTC), True),
        (datetime(2026, 3, 2, 18, 0, tzinfo=UTC), True),
        (datetime(2026, 3, 2, 18, 1, tzinfo=UTC), False),
        (datetime(2026, 3, 2, 7, 59, tzinfo=UTC), False),
        (datetime(2026, 3, 7, 11, 0, tzinfo=UTC), True),
        (datetime(2026, 3, 7, 15, 0, tzinfo=UTC), False),
        (datetime(2026, 3, 8, 10, 0, tzinfo=UTC), False),
    ],
)
def test_business_hours(moment, expected):
    assert SchedulingPolicy().is_within_business_hours(moment) is expected


def test_business_hours_use_clinic_timezone():
    policy = SchedulingPolicy(timezone=ZoneInfo("Europe/Madrid"))
    # 07:30 UTC is 08:30 in Madrid during winter time
    assert policy.is_within_business_hours(datetime(2026, 3, 2, 7, 30, tzinfo=UTC))
    assert not policy.is_within_business_hours(datetime(2026, 3, 2, 17, 30, tzinfo=UTC))


def test_outside_business_hours_only_when_enforced():
    sunday = datetime(2026, 3, 8, 10, 0, tzinfo=UTC)
    SchedulingPolicy().validate_booking_time(sunday, NOW)

    with pytest.raises(InvalidStateException) as exc_info:
        SchedulingPolicy(enforce_business_hours=True).validate_booking_time(sunday, NOW)
    assert exc_info.value.code == "OUTSIDE_BUSINESS_HOURS"


def test_weekday_slots():
    slots = SchedulingPolicy().slots_for_day(date(2026, 3, 2))
    assert len(slots) == 16
    assert slots[0] == datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
    assert slots[7] == datetime(2026, 3, 2, 11, 30, tzinfo=UTC)
    assert slots[8] == datetime(2026, 3, 2, 14, 0, tzinfo=UTC)
    assert slots[-1] == datetime(2026, 3, 2, 17, 30, tzinfo=UTC)


def test_saturday_and_sunday_slots():
    policy = SchedulingPolicy()
    saturday = policy.slots_for_day(date(2026, 3, 7))
    assert len(saturday) == 8
    assert saturday[-1].time() == time(11, 30)
    assert policy.slots_for_day(date(2026, 3, 8)) == []


def test_day_bounds_in_clinic_timezone():
    policy = SchedulingPolicy(timezone=ZoneInfo("Europe/Madrid"))
    start, end = policy.day_bounds(date(2026, 3, 2))
    assert start == datetime(2026, 3, 1, 23, 0, tzinfo=UTC)
    assert end == datetime(2026, 3, 2, 23, 0, tzinfo=UTC)


def test_from_settings():
    settings = Settings(
        DATABASE_URL="postgresql://localhost/test",
        JWT_SECRET_KEY="secret",
        APPOINTMENT_CONFLICT_WINDOW_MINUTES=45,
        APPOINTMENT_MIN_LEAD_MINUTES=120,
        APPOINTMENT_MAX_PER_CLIENT_PER_DAY=3,
        CLINIC_HOURS_ENFORCED=True,
        CLINIC_TIMEZONE="Europe/Madrid",
    )
    policy = SchedulingPolicy.from_settings(settings)
    assert policy.conflict_window == timedelta(minutes=45)
    assert policy.min_lead == timedelta(hours=2)
    assert policy.max_per_client_per_day == 3
    assert policy.enforce_business_hours is True
    assert policy.timezone == ZoneInfo("Europe/Madrid")
