from datetime import date, time
from unittest import mock

import pytest
from django.db import DatabaseError

from clinic.models import Appointment, StaffSchedule
from clinic.services.scheduling import (
    build_slots,
    calculate_end_time,
    doctor_availability,
    generate_time_slots,
    get_appointment_duration,
    is_time_slot_available,
    is_within_working_hours,
    weekday_number,
    working_windows,
)


def test_generate_time_slots_excludes_end():
    assert generate_time_slots('09:00', '11:00', 30) == ['09:00', '09:30', '10:00', '10:30']
    assert generate_time_slots('09:00', '09:00', 30) == []


def test_generate_time_slots_rejects_bad_duration():
    with pytest.raises(ValueError):
        generate_time_slots('09:00', '10:00', 0)
    with pytest.raises(ValueError):
        build_slots([('09:00', '10:00')], [], 0)


def test_end_time_and_duration_helpers():
    assert calculate_end_time('09:45', 30) == '10:15'
    assert get_appointment_duration('09:00', '10:30') == 90


def test_slot_overlap_rules():
    booked = [('10:00', '10:30')]
    assert is_time_slot_available('10:00', booked, 30) is False
    assert is_time_slot_available('09:30', booked, 30) is True
    assert is_time_slot_available('10:30', booked, 30) is True
    # a longer slot starting earlier still collides
    assert is_time_slot_available('09:30', booked, 60) is False


def test_weekday_number_counts_from_sunday():
    assert weekday_number(date(2025, 1, 5)) == 0   # Sunday
    assert weekday_number(date(2025, 1, 6)) == 1   # Monday
    assert weekday_number(date(2025, 1, 11)) == 6  # Saturday


@pytest.mark.django_db
def test_working_windows_default_and_day_off(doctor):
    monday = date(2025, 1, 6)
    assert working_windows(doctor, monday) == [(time(9, 0), time(17, 0))]

    StaffSchedule.objects.create(staff=doctor, day_of_week=1, start_time=time(10, 0),
                                 end_time=time(12, 0), is_available=False)
    assert working_windows(doctor, monday) == []
    assert is_within_working_hours(doctor, monday, '10:30') is False


@pytest.mark.django_db
def test_working_windows_uses_schedule_rows(doctor):
    monday = date(2025, 1, 6)
    StaffSchedule.objects.create(staff=doctor, day_of_week=1, start_time=time(9, 0), end_time=time(12, 0))
    StaffSchedule.objects.create(staff=doctor, day_of_week=1, start_time=time(14, 0), end_time=time(16, 0))
    assert working_windows(doctor, monday) == [(time(9, 0), time(12, 0)), (time(14, 0), time(16, 0))]
    assert is_within_working_hours(doctor, monday, '11:30') is True
    assert is_within_working_hours(doctor, monday, '12:00') is False
    assert is_within_working_hours(doctor, monday, '13:00') is False


@pytest.mark.django_db
def test_availability_marks_booked_slots(doctor, patient):
    on_date = date(2030, 3, 4)
    Appointment.objects.create(patient=patient, doctor=doctor, date=on_date,
                               start_time=time(10, 0), end_time=time(10, 30), duration=30)
    Appointment.objects.create(patient=patient, doctor=doctor, date=on_date, status='cancelled',
                               start_time=time(11, 0), end_time=time(11, 30), duration=30)

    slots = {s['startTime']: s for s in doctor_availability(doctor, on_date)}
    assert len(slots) == 16
    assert slots['10:00']['isAvailable'] is False
    assert slots['10:00']['appointmentId']
    assert slots['09:30']['isAvailable'] is True
    assert slots['10:30']['isAvailable'] is True
    # cancelled appointments free their slot
    assert slots['11:00']['isAvailable'] is True


def test_build_slots_without_appointments():
    slots = build_slots([('09:00', '10:00')], [], 30)
    assert [s['startTime'] for s in slots] == ['09:00', '09:30']
    assert all(s['isAvailable'] for s in slots)
    assert slots[1]['endTime'] == '10:00'


def test_slots_stop_at_midnight():
    assert generate_time_slots('23:00', '23:59', 30) == ['23:00', '23:30']
    assert generate_time_slots('23:00', '23:59', 45) == ['23:00']
    slots = build_slots([('23:00', '23:59')], [], 30)
    assert slots[-1]['endTime'] == '00:00'


def test_booking_ending_at_midnight_blocks_late_slots():
    booked = [('23:30', '00:00')]
    assert is_time_slot_available('23:30', booked, 30) is False
    assert is_time_slot_available('23:00', booked, 30) is True
    assert is_time_slot_available('09:00', booked, 30) is True


@pytest.mark.django_db
def test_availability_is_empty_when_schedule_cannot_be_read(doctor, monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError('connection lost')

    log = mock.Mock()
    monkeypatch.setattr('clinic.services.scheduling.working_windows', broken)
    monkeypatch.setattr('clinic.services.scheduling.logger', log)
    assert doctor_availability(doctor, date(2030, 3, 4)) == []
    assert log.exception.called
