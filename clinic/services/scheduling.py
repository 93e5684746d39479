"""
Doctor time-slot availability.

Times are handled as ``datetime.time`` values internally and rendered as
``"HH:MM"`` strings.  A slot ``[s, s + duration)`` is unavailable when it
overlaps the ``[start, end)`` interval of any non-cancelled appointment
the doctor has on that date.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Iterable, Optional, Union

from django.conf import settings
from django.db import DatabaseError

from clinic.models import Appointment, StaffMember, StaffSchedule

logger = logging.getLogger(__name__)

TimeLike = Union[str, time]
MINUTES_PER_DAY = 24 * 60


def slot_minutes() -> int:
    return settings.CLINIC_SLOT_MINUTES


def parse_time(value: TimeLike) -> time:
    """Accept ``time`` objects or ``"HH:MM"`` / ``"HH:MM:SS"`` strings."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    text = (value or '').strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f'invalid time: {value!r}')


def to_minutes(value: TimeLike) -> int:
    t = parse_time(value)
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    minutes %= MINUTES_PER_DAY
    return time(minutes // 60, minutes % 60)


def format_hhmm(value: TimeLike) -> str:
    return parse_time(value).strftime('%H:%M')


def generate_time_slots(start: TimeLike, end: TimeLike, duration: Optional[int] = None) -> list[str]:
    """Slot start times from ``start`` (inclusive) to ``end`` (exclusive)."""
    if duration is None:
        duration = slot_minutes()
    if duration <= 0:
        raise ValueError('duration must be positive')
    current, stop = to_minutes(start), to_minutes(end)
    slots = []
    # a slot has to finish by midnight
    while current < stop and current + duration <= MINUTES_PER_DAY:
        slots.append(from_minutes(current).strftime('%H:%M'))
        current += duration
    return slots


def calculate_end_time(start: TimeLike, duration: int) -> str:
    return from_minutes(to_minutes(start) + duration).strftime('%H:%M')


def get_appointment_duration(start: TimeLike, end: TimeLike) -> int:
    return to_minutes(end) - to_minutes(start)


def is_time_slot_available(slot: TimeLike, booked: Iterable[tuple[TimeLike, TimeLike]],
                           duration: Optional[int] = None) -> bool:
    """Return False if ``[slot, slot + duration)`` overlaps any booked ``(start, end)``."""
    if duration is None:
        duration = slot_minutes()
    slot_start = to_minutes(slot)
    slot_end = slot_start + duration
    for booked_start, booked_end in booked:
        b_start, b_end = to_minutes(booked_start), to_minutes(booked_end)
        if b_end <= b_start:
            # ends at midnight
            b_end += MINUTES_PER_DAY
        if slot_start < b_end and slot_end > b_start:
            return False
    return True


def weekday_number(on_date: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (on_date.weekday() + 1) % 7


def default_window() -> tuple[time, time]:
    return parse_time(settings.CLINIC_DAY_START), parse_time(settings.CLINIC_DAY_END)


def working_windows(doctor: StaffMember, on_date: date) -> list[tuple[time, time]]:
    """Working windows for the doctor's weekday.

    Falls back to the clinic default when the doctor has no schedule rows
    for that day; a day whose rows are all marked unavailable is a day off.
    """
    rows = list(StaffSchedule.objects.filter(staff=doctor, day_of_week=weekday_number(on_date)))
    if not rows:
        return [default_window()]
    return [(r.start_time, r.end_time) for r in rows if r.is_available]


def booked_appointments(doctor: StaffMember, on_date: date, *, exclude_id: Optional[int] = None):
    qs = Appointment.objects.filter(doctor=doctor, date=on_date).exclude(status=Appointment.STATUS_CANCELLED)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    return qs.order_by('start_time')


def build_slots(windows: Iterable[tuple[TimeLike, TimeLike]], appointments: Iterable[Appointment],
                duration: Optional[int] = None) -> list[dict]:
    if duration is None:
        duration = slot_minutes()
    booked = [(a.start_time, a.end_time) for a in appointments]
    by_start = {format_hhmm(a.start_time): a.appointment_id for a in appointments}
    slots: list[dict] = []
    for start, end in windows:
        for slot in generate_time_slots(start, end, duration):
            slots.append({
                'startTime': slot,
                'endTime': calculate_end_time(slot, duration),
                'isAvailable': is_time_slot_available(slot, booked, duration),
                'appointmentId': by_start.get(slot),
            })
    return slots


def doctor_availability(doctor: StaffMember, on_date: date) -> list[dict]:
    """Slots for ``doctor`` on ``on_date``; empty when the data cannot be read."""
    try:
        windows = working_windows(doctor, on_date)
        appointments = list(booked_appointments(doctor, on_date))
    except DatabaseError:
        logger.exception('failed to load availability for doctor %s on %s', doctor.pk, on_date)
        return []
    return build_slots(windows, appointments)


def is_within_working_hours(doctor: StaffMember, on_date: date, start: TimeLike) -> bool:
    minutes = to_minutes(start)
    return any(to_minutes(ws) <= minutes < to_minutes(we) for ws, we in working_windows(doctor, on_date))
