from datetime import datetime, time, timedelta

import pytest
from django.utils import timezone

from clinic.models import Appointment, Notification, StaffSchedule
from clinic.services.appointments import is_within_cancellation_window
from clinic.tests.helpers import client_for, make_patient, make_staff
from clinic.throttling import WriteScopedRateThrottle

pytestmark = pytest.mark.django_db


def book(client, doctor, patient, on_date, start='10:00', **extra):
    payload = {'patientId': patient.id, 'doctorId': doctor.id, 'date': on_date.isoformat(),
               'startTime': start, 'reason': 'Chest pain'}
    payload.update(extra)
    return client.post('/api/appointments', payload, format='json')


def test_receptionist_books_appointment(receptionist_user, doctor, patient, booking_date):
    r = book(client_for(receptionist_user), doctor, patient, booking_date)
    assert r.status_code == 201, r.data
    data = r.data['data']
    assert data['startTime'] == '10:00'
    assert data['endTime'] == '10:30'
    assert data['status'] == 'scheduled'
    assert data['consultationFee'] == 500.0
    assert data['appointmentId'].startswith('APT')


def test_double_booking_returns_conflict(receptionist_user, doctor, patient, booking_date):
    client = client_for(receptionist_user)
    assert book(client, doctor, patient, booking_date).status_code == 201
    other = make_patient(first_name='Ravi')
    r = book(client, doctor, other, booking_date)
    assert r.status_code == 409
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'slot_unavailable'

    # overlapping but not identical start
    r = book(client, doctor, other, booking_date, start='09:45')
    assert r.status_code == 409
    assert Appointment.objects.filter(doctor=doctor, date=booking_date).count() == 1


def test_cancelled_slot_can_be_rebooked(receptionist_user, doctor, patient, booking_date):
    client = client_for(receptionist_user)
    first = book(client, doctor, patient, booking_date).data['data']
    r = client.post(f"/api/appointments/{first['id']}/cancel", {'reason': 'travel'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'cancelled'
    assert book(client, doctor, patient, booking_date).status_code == 201


def test_booking_outside_working_hours_is_rejected(receptionist_user, doctor, patient, booking_date):
    r = book(client_for(receptionist_user), doctor, patient, booking_date, start='17:00')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid'


def test_booking_respects_day_off(receptionist_user, doctor, patient, booking_date):
    day = (booking_date.weekday() + 1) % 7
    StaffSchedule.objects.create(staff=doctor, day_of_week=day, start_time=time(9, 0),
                                 end_time=time(17, 0), is_available=False)
    r = book(client_for(receptionist_user), doctor, patient, booking_date)
    assert r.status_code == 400


def test_booking_in_the_past_is_rejected(receptionist_user, doctor, patient):
    yesterday = timezone.localdate() - timedelta(days=1)
    r = book(client_for(receptionist_user), doctor, patient, yesterday)
    assert r.status_code == 400


def test_booking_needs_a_doctor(receptionist_user, nurse_user, patient, booking_date):
    nurse = nurse_user.staff_profile
    r = book(client_for(receptionist_user), nurse, patient, booking_date)
    assert r.status_code == 400


def test_patient_books_for_themselves(doctor, patient, booking_date):
    client = client_for(patient.user)
    r = client.post('/api/appointments', {'doctorId': doctor.id, 'date': booking_date.isoformat(),
                                          'startTime': '11:00'}, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['patientId'] == patient.id
    # the doctor is told about the new booking
    assert Notification.objects.filter(recipient=doctor.user, type='appointment_booked').exists()


def test_patient_cannot_book_for_someone_else(doctor, patient, booking_date):
    other = make_patient('patient2', first_name='Ravi')
    r = book(client_for(patient.user), doctor, other, booking_date)
    assert r.status_code == 403
    assert r.data['error']['code'] == 'permission_denied'


def test_lab_technician_cannot_book(doctor, patient, booking_date):
    lab, _ = make_staff('lab1', 'lab_technician')
    assert book(client_for(lab), doctor, patient, booking_date).status_code == 403


def test_availability_endpoint(receptionist_user, doctor, patient, booking_date):
    client = client_for(receptionist_user)
    book(client, doctor, patient, booking_date)
    r = client.get('/api/appointments/availability', {'doctorId': doctor.id, 'date': booking_date.isoformat()})
    assert r.status_code == 200
    slots = {s['startTime']: s['isAvailable'] for s in r.data['data']['slots']}
    assert slots['10:00'] is False
    assert slots['09:30'] is True
    assert slots['10:30'] is True


def test_status_transitions(receptionist_user, doctor, patient, booking_date):
    client = client_for(receptionist_user)
    appt = book(client, doctor, patient, booking_date).data['data']
    url = f"/api/appointments/{appt['id']}/status"

    assert client.post(url, {'status': 'confirmed'}, format='json').data['data']['status'] == 'confirmed'
    r = client.post(f"/api/appointments/{appt['id']}/complete", {'notes': 'stable'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'completed'

    r = client.post(url, {'status': 'scheduled'}, format='json')
    assert r.status_code == 400
    r = client.post(f"/api/appointments/{appt['id']}/cancel", {'reason': 'late'}, format='json')
    assert r.status_code == 400


def test_reschedule_runs_conflict_check(receptionist_user, doctor, patient, booking_date):
    client = client_for(receptionist_user)
    first = book(client, doctor, patient, booking_date, start='10:00').data['data']
    second = book(client, doctor, patient, booking_date, start='11:00').data['data']
    r = client.patch(f"/api/appointments/{second['id']}", {'startTime': '10:00'}, format='json')
    assert r.status_code == 409
    r = client.patch(f"/api/appointments/{second['id']}", {'startTime': '12:00'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['startTime'] == '12:00'
    # moving an appointment onto its own slot is not a conflict
    r = client.patch(f"/api/appointments/{first['id']}", {'startTime': '10:00', 'reason': 'Review'}, format='json')
    assert r.status_code == 200


def test_doctor_sees_only_own_appointments(receptionist_user, doctor, patient, booking_date):
    _, other_doctor = make_staff('doctor2', 'doctor', specialization='Pediatrics')
    client = client_for(receptionist_user)
    book(client, doctor, patient, booking_date)
    book(client, other_doctor, patient, booking_date)

    r = client_for(doctor.user).get('/api/appointments')
    assert r.status_code == 200
    assert {a['doctorId'] for a in r.data['data']} == {doctor.id}
    r = client_for(doctor.user).get(f'/api/appointments/doctor/{other_doctor.id}')
    assert r.status_code == 403


def test_cancellation_window():
    start = datetime(2030, 5, 10, 10, 0)
    appt = Appointment(date=start.date(), start_time=start.time())
    tz = timezone.get_current_timezone()
    assert is_within_cancellation_window(appt, now=timezone.make_aware(start - timedelta(hours=30), tz))
    assert not is_within_cancellation_window(appt, now=timezone.make_aware(start - timedelta(hours=2), tz))


def test_summary_counts(receptionist_user, doctor, patient, booking_date):
    client = client_for(receptionist_user)
    book(client, doctor, patient, booking_date)
    book(client, doctor, patient, booking_date, start='14:00')
    r = client.get('/api/appointments/summary')
    assert r.status_code == 200
    assert r.data['data']['totalAppointments'] == 2


def test_booking_throttle_leaves_listing_alone(monkeypatch, receptionist_user, doctor, patient, booking_date):
    monkeypatch.setitem(WriteScopedRateThrottle.THROTTLE_RATES, 'booking', '1/min')
    client = client_for(receptionist_user)
    for _ in range(3):
        assert client.get('/api/appointments').status_code == 200
    assert book(client, doctor, patient, booking_date).status_code == 201
    assert book(client, doctor, patient, booking_date, start='11:00').status_code == 429
    assert client.get('/api/appointments').status_code == 200
