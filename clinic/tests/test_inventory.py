from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.management import call_command
from django.utils import timezone

from clinic.models import Dispense, Medicine, Notification, Restock
from clinic.services.analytics import top_dispensed_medicines
from clinic.services.inventory import (
    calculate_medicine_status,
    is_expired,
    is_expiring_soon,
    notify_expired_medicines,
    update_medicine,
)
from clinic.tests.helpers import client_for

pytestmark = pytest.mark.django_db


@pytest.fixture
def medicine(db):
    return Medicine.objects.create(name='Paracetamol 500mg', category='tablet', quantity=20, min_threshold=10,
                                   unit_price='2.50', expiry_date=timezone.localdate() + timedelta(days=365))


def test_total_value_follows_quantity(medicine):
    assert medicine.total_value == Decimal('50.00')
    assert medicine.medicine_id.startswith('MED')


def test_medicine_status_order():
    today = date(2025, 6, 1)
    m = Medicine(quantity=0, min_threshold=10, expiry_date=date(2025, 1, 1))
    assert calculate_medicine_status(m, today) == 'out_of_stock'
    m.quantity = 50
    assert calculate_medicine_status(m, today) == 'expired'
    m.expiry_date = date(2025, 6, 20)
    assert calculate_medicine_status(m, today) == 'expiring_soon'
    m.expiry_date = date(2026, 6, 1)
    m.quantity = 5
    assert calculate_medicine_status(m, today) == 'low_stock'
    m.quantity = 50
    assert calculate_medicine_status(m, today) == 'available'


def test_expiry_helpers():
    today = date(2025, 6, 1)
    assert is_expired(date(2025, 5, 31), today)
    assert not is_expired(None, today)
    assert is_expiring_soon(date(2025, 6, 15), today=today)
    assert not is_expiring_soon(date(2025, 12, 1), today=today)


def test_nurse_adds_medicine(nurse_user):
    r = client_for(nurse_user).post('/api/medicines', {
        'name': 'Amoxicillin 250mg', 'category': 'capsule', 'quantity': 100, 'unitPrice': '8.00',
        'minThreshold': 20, 'expiryDate': (timezone.localdate() + timedelta(days=400)).isoformat(),
    }, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['totalValue'] == 800.0
    assert r.data['data']['status'] == 'available'


def test_receptionist_cannot_add_medicine(receptionist_user):
    r = client_for(receptionist_user).post('/api/medicines', {'name': 'X', 'quantity': 1}, format='json')
    assert r.status_code == 403


def test_dispense_reduces_stock_and_alerts(nurse_user, doctor, patient, medicine):
    r = client_for(doctor.user).post(f'/api/medicines/{medicine.id}/dispense',
                                     {'quantity': 12, 'patientId': patient.id}, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['medicine']['quantity'] == 8
    assert r.data['data']['medicine']['status'] == 'low_stock'
    alerts = Notification.objects.filter(type='low_stock_alert')
    assert alerts.filter(recipient=nurse_user).exists()
    # doctors are not on the stock alert list
    assert not alerts.filter(recipient=doctor.user).exists()

    # already low: no second alert
    client_for(doctor.user).post(f'/api/medicines/{medicine.id}/dispense', {'quantity': 1}, format='json')
    assert alerts.filter(recipient=nurse_user).count() == 1


def test_dispense_more_than_stock_is_rejected(nurse_user, medicine):
    r = client_for(nurse_user).post(f'/api/medicines/{medicine.id}/dispense', {'quantity': 21}, format='json')
    assert r.status_code == 400
    medicine.refresh_from_db()
    assert medicine.quantity == 20
    assert not Dispense.objects.exists()


def test_expired_medicine_cannot_be_dispensed(nurse_user, medicine):
    Medicine.objects.filter(id=medicine.id).update(expiry_date=timezone.localdate() - timedelta(days=1))
    r = client_for(nurse_user).post(f'/api/medicines/{medicine.id}/dispense', {'quantity': 1}, format='json')
    assert r.status_code == 400


def test_restock(admin_user, medicine):
    new_expiry = timezone.localdate() + timedelta(days=700)
    r = client_for(admin_user).post(f'/api/medicines/{medicine.id}/restock', {
        'quantity': 30, 'unitPrice': '3.00', 'expiryDate': new_expiry.isoformat(), 'batchNumber': 'B42',
    }, format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['quantity'] == 50
    assert r.data['data']['totalValue'] == 150.0
    assert r.data['data']['batchNumber'] == 'B42'
    assert Restock.objects.filter(medicine=medicine, quantity=30).exists()


def test_doctor_cannot_restock(doctor, medicine):
    r = client_for(doctor.user).post(f'/api/medicines/{medicine.id}/restock', {'quantity': 5}, format='json')
    assert r.status_code == 403


def test_summary_and_export(admin_user, medicine):
    Medicine.objects.create(name='Cough Syrup', category='syrup', quantity=0, unit_price='95.00')
    client = client_for(admin_user)
    data = client.get('/api/medicines/summary').data['data']
    assert data['totalMedicines'] == 2
    assert data['outOfStockItems'] == 1
    assert data['stockByCategory'] == {'tablet': 20, 'syrup': 0}

    r = client.get('/api/medicines/export')
    assert r.status_code == 200
    body = r.content.decode()
    assert body.startswith('Medicine ID,Name')
    assert 'Paracetamol 500mg' in body


def test_top_dispensed(nurse_user, medicine):
    other = Medicine.objects.create(name='Ibuprofen', category='tablet', quantity=50)
    client = client_for(nurse_user)
    client.post(f'/api/medicines/{medicine.id}/dispense', {'quantity': 2}, format='json')
    client.post(f'/api/medicines/{other.id}/dispense', {'quantity': 5}, format='json')
    client.post(f'/api/medicines/{medicine.id}/dispense', {'quantity': 1}, format='json')
    top = top_dispensed_medicines()
    assert [row['name'] for row in top] == ['Ibuprofen', 'Paracetamol 500mg']
    assert top[1]['value'] == 3


def test_vendor_crud(admin_user):
    client = client_for(admin_user)
    r = client.post('/api/vendors', {'name': 'MedSupply Co', 'contactPerson': 'Ravi'}, format='json')
    assert r.status_code == 201, r.data
    vendor_id = r.data['data']['id']
    r = client.patch(f'/api/vendors/{vendor_id}', {'phone': '0221234567'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['phone'] == '0221234567'


def test_expired_medicine_command_alerts_nurses(nurse_user, medicine):
    Medicine.objects.filter(id=medicine.id).update(expiry_date=timezone.localdate() - timedelta(days=3))
    call_command('mark_overdue_invoices')
    assert Notification.objects.filter(recipient=nurse_user, type='medicine_expired').exists()


def test_expired_medicine_is_reported_once_per_expiry_date(nurse_user, medicine):
    expired = timezone.localdate() - timedelta(days=3)
    Medicine.objects.filter(id=medicine.id).update(expiry_date=expired)
    alerts = Notification.objects.filter(recipient=nurse_user, type='medicine_expired')
    assert notify_expired_medicines() == 1
    assert notify_expired_medicines() == 0
    assert alerts.count() == 1

    medicine.refresh_from_db()
    update_medicine(None, medicine, {'expiry_date': expired - timedelta(days=1)})
    assert notify_expired_medicines() == 1
    assert alerts.count() == 2
