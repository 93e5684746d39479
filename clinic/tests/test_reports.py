import pytest

from clinic.models import MedicalReport, Notification
from clinic.tests.helpers import client_for, make_patient, make_staff

pytestmark = pytest.mark.django_db


@pytest.fixture
def lab_user(db):
    user, _ = make_staff('lab1', 'lab_technician')
    return user


def upload(client, patient, **extra):
    payload = {'patientId': patient.id, 'reportType': 'lab', 'title': 'Complete Blood Count',
               'fileUrl': 'https://files.example.com/cbc.pdf', 'tags': ['Routine']}
    payload.update(extra)
    return client.post('/api/reports', payload, format='json')


def test_lab_technician_uploads_report(lab_user, patient, doctor):
    r = upload(client_for(lab_user), patient, doctorId=doctor.id)
    assert r.status_code == 201, r.data
    data = r.data['data']
    assert data['status'] == 'uploaded'
    assert data['patientName'] == patient.full_name
    assert data['uploadedBy'] == lab_user.id
    assert Notification.objects.filter(recipient=patient.user, type='report_uploaded').exists()
    assert Notification.objects.filter(recipient=doctor.user, type='report_uploaded').exists()


def test_urgent_report_waits_for_review(lab_user, patient):
    r = upload(client_for(lab_user), patient, priority='urgent')
    assert r.data['data']['status'] == 'pending_review'


def test_nurse_and_patient_cannot_upload(nurse_user, patient):
    assert upload(client_for(nurse_user), patient).status_code == 403
    assert upload(client_for(patient.user), patient).status_code == 403


def test_visibility_by_role(lab_user, nurse_user, doctor, patient):
    mine = upload(client_for(lab_user), patient, doctorId=doctor.id).data['data']
    other_patient = make_patient('patient2', first_name='Ravi')
    upload(client_for(lab_user), other_patient)
    _, other_doctor = make_staff('doctor2', 'doctor')

    assert len(client_for(nurse_user).get('/api/reports').data['data']) == 2
    assert [r['id'] for r in client_for(doctor.user).get('/api/reports').data['data']] == [mine['id']]
    assert [r['id'] for r in client_for(patient.user).get('/api/reports').data['data']] == [mine['id']]
    assert client_for(other_doctor.user).get(f"/api/reports/{mine['id']}").status_code == 403
    assert client_for(other_patient.user).get(f"/api/reports/{mine['id']}").status_code == 403


def test_tag_filter(lab_user, patient, admin_user):
    client = client_for(lab_user)
    upload(client, patient, tags=['Urgent', 'Diagnostic'])
    upload(client, patient, title='Lipid Profile', tags=['Routine'])
    r = client_for(admin_user).get('/api/reports', {'tag': 'Diagnostic'})
    assert [row['title'] for row in r.data['data']] == ['Complete Blood Count']
    assert 'Follow-up' in r.data['tags']


def test_doctor_reviews_report(lab_user, doctor, patient):
    report = upload(client_for(lab_user), patient, doctorId=doctor.id).data['data']
    client = client_for(doctor.user)
    r = client.post(f"/api/reports/{report['id']}/review", {'notes': 'Haemoglobin low'}, format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['status'] == 'reviewed'
    assert r.data['data']['reviewedBy'] == doctor.user.id
    assert r.data['data']['reviewedAt']


def test_lab_technician_cannot_review(lab_user, patient):
    report = upload(client_for(lab_user), patient).data['data']
    r = client_for(lab_user).post(f"/api/reports/{report['id']}/review", {}, format='json')
    assert r.status_code == 403


def test_only_uploader_or_admin_deletes(lab_user, admin_user, doctor, patient):
    report = upload(client_for(lab_user), patient, doctorId=doctor.id).data['data']
    assert client_for(doctor.user).delete(f"/api/reports/{report['id']}").status_code == 403
    assert client_for(admin_user).delete(f"/api/reports/{report['id']}").status_code == 204
    assert not MedicalReport.objects.exists()


def test_summary(lab_user, admin_user, patient):
    client = client_for(lab_user)
    upload(client, patient)
    upload(client, patient, reportType='radiology', title='Chest X-ray', priority='critical')
    data = client_for(admin_user).get('/api/reports/summary').data['data']
    assert data['totalReports'] == 2
    assert data['pendingReview'] == 2
    assert data['urgent'] == 1
    assert data['byType'] == {'lab': 1, 'radiology': 1}
