from datetime import date, timedelta

import pytest
from django.utils import timezone

from clinic.models import AuditEvent, Patient, StaffMember
from clinic.services.patients import calculate_age, validate_phone_number
from clinic.services.staff import format_staff_name, validate_license_number
from clinic.tests.helpers import client_for, make_patient, make_staff

pytestmark = pytest.mark.django_db


def next_weekday(weekday):
    """Next date (after today) falling on ``weekday``, Monday being 0."""
    d = timezone.localdate() + timedelta(days=1)
    while d.weekday() != weekday:
        d += timedelta(days=1)
    return d


def test_calculate_age():
    assert calculate_age(date(2000, 6, 15), today=date(2025, 6, 14)) == 24
    assert calculate_age(date(2000, 6, 15), today=date(2025, 6, 15)) == 25
    assert calculate_age(None) is None


def test_phone_and_license_formats():
    assert validate_phone_number('9876543210')
    assert not validate_phone_number('1234567890')
    assert validate_license_number('MH123456', 'doctor')
    assert not validate_license_number('MH1234', 'doctor')
    assert validate_license_number('KA12345', 'nurse')
    assert format_staff_name('Meera', 'Iyer', 'doctor') == 'Dr. Meera Iyer'
    assert format_staff_name('Joy', 'Das', 'nurse') == 'Joy Das'


def test_create_patient(receptionist_user):
    r = client_for(receptionist_user).post('/api/patients', {
        'firstName': 'Kiran', 'lastName': 'Rao', 'dateOfBirth': '1990-04-02', 'gender': 'female',
        'phone': '9123456780', 'bloodGroup': 'O+', 'allergies': ['Penicillin', ' '],
    }, format='json')
    assert r.status_code == 201, r.data
    data = r.data['data']
    assert data['patientId'].startswith('PAT')
    assert data['allergies'] == ['Penicillin']
    assert data['status'] == 'active'
    assert AuditEvent.objects.filter(action='patient_create').exists()


def test_invalid_contact_details_are_rejected(receptionist_user):
    client = client_for(receptionist_user)
    r = client.post('/api/patients', {'firstName': 'Kiran', 'phone': '12345'}, format='json')
    assert r.status_code == 400
    future = (timezone.localdate() + timedelta(days=3)).isoformat()
    r = client.post('/api/patients', {'firstName': 'Kiran', 'dateOfBirth': future}, format='json')
    assert r.status_code == 400
    r = client.post('/api/patients', {'firstName': 'K'}, format='json')
    assert r.status_code == 400


def test_search_and_paging(nurse_user):
    for name in ('Anil', 'Bina', 'Chitra'):
        make_patient(first_name=name)
    client = client_for(nurse_user)
    r = client.get('/api/patients', {'search': 'bin'})
    assert [p['firstName'] for p in r.data['data']] == ['Bina']
    r = client.get('/api/patients', {'page': 2, 'pageSize': 2})
    assert r.data['total'] == 3
    assert len(r.data['data']) == 1


def test_patient_reads_only_own_record(patient):
    other = make_patient(first_name='Ravi')
    client = client_for(patient.user)
    assert client.get(f'/api/patients/{patient.id}').status_code == 200
    assert client.get(f'/api/patients/{other.id}').status_code == 403
    assert client.get('/api/patients').status_code == 403
    assert client.patch(f'/api/patients/{patient.id}', {'address': 'x'}, format='json').status_code == 403


def test_soft_and_hard_delete(admin_user, receptionist_user, patient):
    r = client_for(receptionist_user).delete(f'/api/patients/{patient.id}')
    assert r.status_code == 200
    patient.refresh_from_db()
    assert patient.status == 'inactive'

    assert client_for(receptionist_user).delete(f'/api/patients/{patient.id}?hard=true').status_code == 403
    assert client_for(admin_user).delete(f'/api/patients/{patient.id}?hard=true').status_code == 200
    assert not Patient.objects.filter(id=patient.id).exists()


def test_update_patient(nurse_user, patient):
    payload = {'bloodGroup': 'B+', 'address': '<b>12</b> MG Road'}
    r = client_for(nurse_user).patch(f'/api/patients/{patient.id}', payload, format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['bloodGroup'] == 'B+'
    assert r.data['data']['address'] == '12 MG Road'


def test_export_is_admin_only(admin_user, nurse_user, patient):
    assert client_for(nurse_user).get('/api/patients/export').status_code == 403
    r = client_for(admin_user).get('/api/patients/export')
    assert r.status_code == 200
    assert patient.patient_id in r.content.decode()


def test_patient_summary(nurse_user, patient):
    make_patient(first_name='Ravi', gender='male', status='inactive')
    data = client_for(nurse_user).get('/api/patients/summary').data['data']
    assert data['totalPatients'] == 2
    assert data['activePatients'] == 1


def test_admin_adds_staff_member(admin_user, nurse_user):
    payload = {'firstName': 'Meera', 'lastName': 'Iyer', 'role': 'doctor', 'specialization': 'Neurology',
               'licenseNumber': 'MH123456', 'consultationFee': '800.00'}
    assert client_for(nurse_user).post('/api/staff', payload, format='json').status_code == 403
    r = client_for(admin_user).post('/api/staff', payload, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['staffId'].startswith('DOC')
    assert r.data['data']['name'] == 'Dr. Meera Iyer'

    payload['licenseNumber'] = 'bad'
    assert client_for(admin_user).post('/api/staff', payload, format='json').status_code == 400


def test_staff_edits_own_record_but_not_fee(doctor):
    r = client_for(doctor.user).patch(f'/api/staff/{doctor.id}', {'phone': '9000000001', 'consultationFee': '1'},
                                      format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['phone'] == '9000000001'
    assert r.data['data']['consultationFee'] == 500.0


def test_staff_cannot_edit_colleagues(nurse_user, doctor):
    r = client_for(nurse_user).patch(f'/api/staff/{doctor.id}', {'phone': '9000000001'}, format='json')
    assert r.status_code == 403


def test_deactivating_staff_blocks_login(admin_user, nurse_user):
    staff = nurse_user.staff_profile
    assert client_for(admin_user).delete(f'/api/staff/{staff.id}').status_code == 200
    staff.refresh_from_db()
    nurse_user.refresh_from_db()
    assert staff.status == 'inactive'
    assert nurse_user.is_active is False


def test_schedule_replace_and_doctor_search(admin_user, doctor, patient):
    _, pediatrician = make_staff('doctor2', 'doctor', specialization='Pediatrics')
    client = client_for(admin_user)
    r = client.put(f'/api/staff/{doctor.id}/schedule', {'schedule': [
        {'dayOfWeek': 1, 'startTime': '09:00', 'endTime': '13:00'},
        {'dayOfWeek': 0, 'startTime': '09:00', 'endTime': '13:00', 'isAvailable': False},
    ]}, format='json')
    assert r.status_code == 200, r.data
    assert {row['dayName'] for row in r.data['data']} == {'Monday', 'Sunday'}

    bad = client.put(f'/api/staff/{doctor.id}/schedule', {'schedule': [
        {'dayOfWeek': 2, 'startTime': '13:00', 'endTime': '09:00'},
    ]}, format='json')
    assert bad.status_code == 400
    assert StaffMember.objects.get(id=doctor.id).schedules.count() == 2

    patient_client = client_for(patient.user)
    r = patient_client.get('/api/staff/doctors', {'specialization': 'cardio'})
    assert [d['id'] for d in r.data['data']] == [doctor.id]
    sunday = next_weekday(6)
    r = patient_client.get('/api/staff/doctors', {'date': sunday.isoformat()})
    assert [d['id'] for d in r.data['data']] == [pediatrician.id]

    monday = next_weekday(0)
    r = patient_client.get(f'/api/staff/{doctor.id}/availability', {'date': monday.isoformat()})
    assert len(r.data['data']) == 8


def test_staff_summary_admin_only(admin_user, nurse_user):
    assert client_for(nurse_user).get('/api/staff/summary').status_code == 403
    data = client_for(admin_user).get('/api/staff/summary').data['data']
    assert data['totalStaff'] == 2
    assert data['byRole'] == {'admin': 1, 'nurse': 1}
