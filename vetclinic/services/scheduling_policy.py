"""Time rules for booking appointments: notice, clinic hours, overlap window, slots."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from vetclinic.config import Settings
from vetclinic.core.exceptions import InvalidStateException
from vetclinic.core.timeutils import as_utc

# Opening ranges per ISO weekday (1 = Monday). Sunday is closed.
WEEKDAY_HOURS: tuple[tuple[time, time], ...] = ((time(8), time(12)), (time(14), time(18)))
SATURDAY_HOURS: tuple[tuple[time, time], ...] = ((time(8), time(12)),)

CLINIC_HOURS_TEXT = "Monday to Friday 8:00-12:00 and 14:00-18:00, Saturday 8:00-12:00"


@dataclass(frozen=True)
class SchedulingPolicy:
    """
    Booking rules applied by the appointment lifecycle.

    The overlap check is a proximity test: another appointment conflicts when
    its start falls strictly inside ``(t - conflict_window, t + conflict_window)``.
    Appointment durations are not modelled.
    """

    conflict_window: timedelta = timedelta(minutes=30)
    min_lead: timedelta = timedelta(0)
    enforce_business_hours: bool = False
    max_per_client_per_day: int = 0
    slot_minutes: int = 30
    timezone: ZoneInfo = ZoneInfo("UTC")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingPolicy":
        """Build the policy from application settings."""
        return cls(
            conflict_window=timedelta(minutes=settings.appointment_conflict_window_minutes),
            min_lead=timedelta(minutes=settings.appointment_min_lead_minutes),
            enforce_business_hours=settings.clinic_hours_enforced,
            max_per_client_per_day=settings.appointment_max_per_client_per_day,
            slot_minutes=settings.appointment_slot_minutes,
            timezone=ZoneInfo(settings.clinic_timezone),
        )

    def conflict_bounds(self, scheduled_at: datetime) -> tuple[datetime, datetime]:
        """Exclusive bounds of the overlap window around a requested time."""
        scheduled_at = as_utc(scheduled_at)
        return scheduled_at - self.conflict_window, scheduled_at + self.conflict_window

    def opening_hours(self, day: date) -> tuple[tuple[time, time], ...]:
        """Opening ranges for a local calendar day."""
        weekday = day.isoweekday()
        if weekday == 7:
            return ()
        if weekday == 6:
            return SATURDAY_HOURS
        return WEEKDAY_HOURS

    def is_within_business_hours(self, scheduled_at: datetime) -> bool:
        """Whether a time falls inside opening hours; the closing minute itself is accepted."""
        local = as_utc(scheduled_at).astimezone(self.timezone)
        moment = local.time().replace(tzinfo=None)
        return any(start <= moment <= end for start, end in self.opening_hours(local.date()))

    def validate_booking_time(self, scheduled_at: datetime, now: datetime) -> None:
        """
        Check a requested appointment time for scheduling or rescheduling.

        Raises:
            InvalidStateException: PAST_DATE_TIME, INSUFFICIENT_NOTICE or
                OUTSIDE_BUSINESS_HOURS
        """
        scheduled_at = as_utc(scheduled_at)
        now = as_utc(now)

        if scheduled_at <= now:
            raise InvalidStateException(
                "Appointments cannot be scheduled in the past",
                code="PAST_DATE_TIME",
                scheduled_at=scheduled_at.isoformat(),
            )

        if self.min_lead and scheduled_at < now + self.min_lead:
            raise InvalidStateException(
                f"Appointments must be booked at least {self._lead_text()} in advance",
                code="INSUFFICIENT_NOTICE",
                scheduled_at=scheduled_at.isoformat(),
            )

        if self.enforce_business_hours and not self.is_within_business_hours(scheduled_at):
            raise InvalidStateException(
                f"Appointments must be within clinic hours: {CLINIC_HOURS_TEXT}",
                code="OUTSIDE_BUSINESS_HOURS",
                scheduled_at=scheduled_at.isoformat(),
            )

    def validate_cancellation(self, scheduled_at: datetime, now: datetime) -> None:
        """
        Check that an appointment is cancelled with enough notice.

        Raises:
            InvalidStateException: INSUFFICIENT_NOTICE
        """
        if self.min_lead and as_utc(scheduled_at) < as_utc(now) + self.min_lead:
            raise InvalidStateException(
                f"Appointments must be cancelled at least {self._lead_text()} in advance",
                code="INSUFFICIENT_NOTICE",
                scheduled_at=as_utc(scheduled_at).isoformat(),
            )

    def local_day_bounds(self, scheduled_at: datetime) -> tuple[datetime, datetime]:
        """UTC start (inclusive) and end (exclusive) of the clinic-local day containing a time."""
        local_day = as_utc(scheduled_at).astimezone(self.timezone).date()
        return self.day_bounds(local_day)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """UTC start (inclusive) and end (exclusive) of a clinic-local calendar day."""
        start = datetime.combine(day, time(0), tzinfo=self.timezone)
        end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=self.timezone)
        return as_utc(start), as_utc(end)

    def slots_for_day(self, day: date) -> list[datetime]:
        """Start times (UTC) of every bookable slot on a clinic-local day."""
        step = timedelta(minutes=self.slot_minutes)
        slots: list[datetime] = []
        for start, end in self.opening_hours(day):
            current = datetime.combine(day, start, tzinfo=self.timezone)
            closing = datetime.combine(day, end, tzinfo=self.timezone)
            while current < closing:
                slots.append(as_utc(current))
                current += step
        return slots

    def _lead_text(self) -> str:
        minutes = int(self.min_lead.total_seconds() // 60)
        if minutes % 60 == 0:
            hours = minutes // 60
            return f"{hours} hour{'s' if hours != 1 else ''}"
        return f"{minutes} minutes"
