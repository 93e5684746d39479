from datetime import date, time
from decimal import Decimal

import pytest
from django.core.cache import cache
from django.core.management import call_command

from clinic.models import Appointment, Bed, Invoice, Medicine, Visit
from clinic.services.analytics import (
    KPI_CACHE_KEY,
    appointments_by_time_slot,
    calculate_growth_rate,
    calculate_kpi_metrics,
    growth_trend,
)
from clinic.tests.helpers import client_for, make_patient, make_staff

pytestmark = pytest.mark.django_db


def test_growth_rate():
    assert calculate_growth_rate(0, 0) == 0
    assert calculate_growth_rate(5, 0) == 100
    assert calculate_growth_rate(150, 100) == 50
    assert calculate_growth_rate(50, 100) == -50
    assert [growth_trend(r) for r in (12, -3, 0)] == ['up', 'down', 'neutral']


def test_time_slot_buckets():
    appts = [Appointment(start_time=time(h, 0)) for h in (9, 10, 11, 15, 20)]
    series = {row['name']: row['value'] for row in appointments_by_time_slot(appts)}
    assert series == {'9-11 AM': 2, '11-1 PM': 1, '1-3 PM': 0, '3-5 PM': 1, '5-7 PM': 0}


def test_kpis_are_cached_until_refreshed(admin_user, nurse_user, patient):
    admin = client_for(admin_user)
    data = admin.get('/api/analytics/kpis').data['data']
    assert data['totalPatients'] == 1
    assert data['totalStaff'] == 2
    assert data['occupancyRate'] == 0

    make_patient(first_name='Ravi')
    assert admin.get('/api/analytics/kpis').data['data']['totalPatients'] == 1
    # only administrators may bypass the cache
    assert client_for(nurse_user).get('/api/analytics/kpis', {'refresh': 'true'}).data['data']['totalPatients'] == 1
    assert admin.get('/api/analytics/kpis', {'refresh': 'true'}).data['data']['totalPatients'] == 2


def test_kpi_values(patient, nurse_user):
    today = date(2030, 5, 15)
    for day, amount, status in [
        (today, '100.00', 'paid'),
        (date(2030, 5, 2), '50.25', 'paid'),
        (today, '999.00', 'pending'),
        (date(2030, 4, 30), '70.00', 'paid'),
    ]:
        Invoice.objects.create(patient=patient, invoice_date=day, total_amount=Decimal(amount), status=status)
    beds = [Bed.objects.create(bed_number=f'GEN-0{n}', ward='General Ward') for n in range(1, 5)]
    Bed.objects.filter(id=beds[0].id).update(status='occupied', patient=patient)
    Visit.objects.create(patient=patient, visit_type='ipd', bed=beds[0])
    Visit.objects.create(patient=patient, visit_type='ipd', status='discharged')
    Medicine.objects.create(name='Paracetamol', quantity=5, min_threshold=10)
    Medicine.objects.create(name='Amoxicillin', quantity=10, min_threshold=10)
    Medicine.objects.create(name='Cetirizine', quantity=50, min_threshold=10)

    data = calculate_kpi_metrics(today=today)
    assert data['todayRevenue'] == 100.0
    assert data['monthlyRevenue'] == 150.25
    assert data['currentInpatients'] == 1
    assert data['lowStockAlerts'] == 2
    assert data['occupancyRate'] == 25
    assert data['totalStaff'] == 1


def test_refresh_caches_command(patient):
    call_command('refresh_caches')
    assert cache.get(KPI_CACHE_KEY)['totalPatients'] == 1


def test_patients_cannot_read_kpis(patient):
    assert client_for(patient.user).get('/api/analytics/kpis').status_code == 403


def test_revenue_trends(admin_user, receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = client.post('/api/invoices', {
        'patientId': patient.id, 'items': [{'description': 'Consultation', 'quantity': 1, 'unitPrice': '250.00'}],
    }, format='json').data['data']
    client.post(f"/api/invoices/{invoice['id']}/mark-paid", {}, format='json')

    r = client_for(admin_user).get('/api/analytics/revenue-trends', {'days': 7})
    assert r.status_code == 200
    assert len(r.data['data']) == 7
    assert r.data['data'][-1]['value'] == 250.0
    assert client.get('/api/analytics/revenue-trends').status_code == 403


def test_doctor_analytics_is_private(receptionist_user, doctor, patient, booking_date):
    client_for(receptionist_user).post('/api/appointments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'date': booking_date.isoformat(), 'startTime': '09:30',
    }, format='json')
    r = client_for(doctor.user).get(f'/api/analytics/doctor/{doctor.id}')
    assert r.status_code == 200
    assert r.data['data']['totalAppointments'] == 1
    assert r.data['data']['followUpRate'] == 0

    other, _ = make_staff('doctor2', 'doctor')
    assert client_for(other).get(f'/api/analytics/doctor/{doctor.id}').status_code == 403


def test_patient_analytics(patient):
    r = client_for(patient.user).get(f'/api/analytics/patient/{patient.id}')
    assert r.status_code == 200
    assert len(r.data['data']['visitsSummary']) == 12
    assert r.data['data']['outstandingBalance'] == 0

    other = make_patient('patient2', first_name='Ravi')
    assert client_for(other.user).get(f'/api/analytics/patient/{patient.id}').status_code == 403


@pytest.mark.parametrize('fixture, key', [
    ('admin_user', 'kpis'),
    ('nurse_user', 'activeInpatients'),
    ('receptionist_user', 'pendingInvoices'),
])
def test_dashboard_follows_role(request, fixture, key):
    user = request.getfixturevalue(fixture)
    data = client_for(user).get('/api/dashboard').data['data']
    assert data['role'] == user.role
    assert key in data


def test_doctor_and_patient_dashboards(doctor, patient, booking_date, receptionist_user):
    client_for(receptionist_user).post('/api/appointments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'date': booking_date.isoformat(), 'startTime': '10:00',
    }, format='json')

    data = client_for(doctor.user).get('/api/dashboard/doctor').data['data']
    assert data['profile']['specialization'] == 'Cardiology'

    data = client_for(patient.user).get('/api/dashboard').data['data']
    assert data['role'] == 'patient'
    assert len(data['upcomingAppointments']) == 1
    assert data['unreadNotifications'] == 1


def test_lab_dashboard():
    lab, _ = make_staff('lab1', 'lab_technician')
    data = client_for(lab).get('/api/dashboard').data['data']
    assert data == {'role': 'lab_technician', 'recentReports': [], 'awaitingReview': 0}


def test_role_dashboards_are_restricted(nurse_user, patient):
    assert client_for(nurse_user).get('/api/dashboard/admin').status_code == 403
    assert client_for(nurse_user).get('/api/dashboard/patient').status_code == 403
    assert client_for(patient.user).get('/api/dashboard/nurse').status_code == 403
