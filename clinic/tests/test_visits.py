import pytest

from clinic.models import Bed, Visit
from clinic.services.visits import format_vitals, occupancy_rate, validate_vitals
from clinic.tests.helpers import client_for, make_patient

pytestmark = pytest.mark.django_db


@pytest.fixture
def bed(db):
    return Bed.objects.create(bed_number='GEN-01', ward='General Ward', room_number='G1')


def admit(client, patient, bed, doctor=None):
    payload = {'patientId': patient.id, 'visitType': 'ipd', 'bedId': bed.id, 'chiefComplaint': 'Fever'}
    if doctor:
        payload['doctorId'] = doctor.id
    return client.post('/api/visits', payload, format='json')


def test_occupancy_rate_handles_empty_ward():
    assert occupancy_rate(0, 0) == 0
    assert occupancy_rate(3, 4) == 75


def test_vitals_helpers():
    assert validate_vitals({'temperature': 98.6, 'heart_rate': 72}) == {}
    errors = validate_vitals({'temperature': 120, 'oxygen_saturation': 50})
    assert set(errors) == {'temperature', 'oxygen_saturation'}
    assert format_vitals({'blood_pressure': '120/80', 'heart_rate': 72}) == 'BP: 120/80, HR: 72 bpm'


def test_opd_visit(nurse_user, patient, doctor):
    r = client_for(nurse_user).post('/api/visits', {'patientId': patient.id, 'doctorId': doctor.id,
                                                    'diagnosis': 'Viral fever'}, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['visitType'] == 'opd'
    assert r.data['data']['visitId'].startswith('VIS-')


def test_ipd_admission_occupies_bed(nurse_user, patient, doctor, bed):
    r = admit(client_for(nurse_user), patient, bed, doctor)
    assert r.status_code == 201, r.data
    bed.refresh_from_db()
    assert bed.status == 'occupied'
    assert bed.patient_id == patient.id


def test_ipd_admission_needs_a_bed(nurse_user, patient):
    r = client_for(nurse_user).post('/api/visits', {'patientId': patient.id, 'visitType': 'ipd'}, format='json')
    assert r.status_code == 400


def test_occupied_bed_cannot_be_reused(nurse_user, patient, bed):
    client = client_for(nurse_user)
    admit(client, patient, bed)
    r = admit(client, make_patient(first_name='Ravi'), bed)
    assert r.status_code == 409
    assert r.data['error']['code'] == 'bed_unavailable'
    assert Visit.objects.count() == 1


def test_discharge_frees_bed_and_stores_summary(nurse_user, patient, doctor, bed):
    client = client_for(nurse_user)
    visit = admit(client, patient, bed, doctor).data['data']
    r = client.post(f"/api/visits/{visit['id']}/discharge", {
        'finalDiagnosis': 'Dengue fever', 'treatmentGiven': 'IV fluids',
        'medicinesAtDischarge': ['Paracetamol 500mg'], 'followUpInstructions': 'Review in a week',
    }, format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['status'] == 'discharged'
    bed.refresh_from_db()
    assert bed.status == 'available'
    assert bed.patient_id is None

    r = client.get(f"/api/visits/{visit['id']}/discharge-summary")
    assert r.status_code == 200
    assert r.data['data']['finalDiagnosis'] == 'Dengue fever'
    assert 'Dengue fever' in r.data['data']['text']

    r = client.post(f"/api/visits/{visit['id']}/discharge", {}, format='json')
    assert r.status_code == 400


def test_receptionist_cannot_discharge(receptionist_user, nurse_user, patient, bed):
    visit = admit(client_for(nurse_user), patient, bed).data['data']
    r = client_for(receptionist_user).post(f"/api/visits/{visit['id']}/discharge", {}, format='json')
    assert r.status_code == 403


def test_record_vitals(nurse_user, patient, bed):
    client = client_for(nurse_user)
    visit = admit(client, patient, bed).data['data']
    url = f"/api/visits/{visit['id']}/vitals"
    r = client.post(url, {'bloodPressure': '120/80', 'temperature': '98.6', 'heartRate': 72}, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['summary'].startswith('BP: 120/80')

    r = client.post(url, {'heartRate': 250}, format='json')
    assert r.status_code == 400
    assert len(client.get(url).data['data']) == 1


def test_bed_assign_and_free(admin_user, patient, bed):
    client = client_for(admin_user)
    r = client.post(f'/api/beds/{bed.id}/assign', {'patientId': patient.id}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'occupied'
    r = client.post(f'/api/beds/{bed.id}/assign', {'patientId': patient.id}, format='json')
    assert r.status_code == 409
    r = client.post(f'/api/beds/{bed.id}/free', format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'available'


def test_bed_held_by_admission_cannot_be_freed(nurse_user, patient, bed):
    client = client_for(nurse_user)
    admit(client, patient, bed)
    assert client.post(f'/api/beds/{bed.id}/free', format='json').status_code == 409


def test_bed_summary(admin_user, patient, bed):
    Bed.objects.create(bed_number='GEN-02', ward='General Ward')
    client = client_for(admin_user)
    client.post(f'/api/beds/{bed.id}/assign', {'patientId': patient.id}, format='json')
    data = client.get('/api/beds/summary').data['data']
    assert data['totalBeds'] == 2
    assert data['occupiedBeds'] == 1
    assert data['occupancyRate'] == 50


def test_only_admin_adds_beds(admin_user, nurse_user):
    payload = {'bedNumber': 'ICU-01', 'ward': 'ICU', 'bedType': 'icu'}
    assert client_for(nurse_user).post('/api/beds', payload, format='json').status_code == 403
    r = client_for(admin_user).post('/api/beds', payload, format='json')
    assert r.status_code == 201


def test_patient_sees_own_visits_only(nurse_user, patient):
    client = client_for(nurse_user)
    client.post('/api/visits', {'patientId': patient.id}, format='json')
    client.post('/api/visits', {'patientId': make_patient(first_name='Ravi').id}, format='json')
    r = client_for(patient.user).get('/api/visits')
    assert r.status_code == 200
    assert [v['patientId'] for v in r.data['data']] == [patient.id]


def test_closed_visit_does_not_release_a_later_admission(nurse_user, patient, bed):
    client = client_for(nurse_user)
    first = admit(client, patient, bed).data['data']
    r = client.patch(f"/api/visits/{first['id']}", {'status': 'completed'}, format='json')
    assert r.status_code == 200, r.data
    bed.refresh_from_db()
    assert bed.status == 'available'

    other = make_patient(first_name='Ravi')
    assert admit(client, other, bed).status_code == 201

    r = client.patch(f"/api/visits/{first['id']}", {'status': 'completed', 'notes': 'late entry'}, format='json')
    assert r.status_code == 200, r.data
    r = client.patch(f"/api/visits/{first['id']}", {'status': 'cancelled'}, format='json')
    assert r.status_code == 400
    bed.refresh_from_db()
    assert bed.status == 'occupied'
    assert bed.patient_id == other.id
