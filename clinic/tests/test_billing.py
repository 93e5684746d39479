from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.management import call_command
from django.utils import timezone

from clinic.models import Invoice, Notification
from clinic.services.billing import (
    calculate_days_overdue,
    calculate_invoice_totals,
    is_invoice_overdue,
)
from clinic.tests.helpers import client_for, make_patient

pytestmark = pytest.mark.django_db


def test_invoice_totals_example():
    totals = calculate_invoice_totals([{'quantity': 2, 'unit_price': 50}], 10, 18)
    assert totals['subtotal'] == Decimal('100.00')
    assert totals['discount_amount'] == Decimal('10.00')
    assert totals['taxable_amount'] == Decimal('90.00')
    assert totals['tax_amount'] == Decimal('16.20')
    assert totals['total_amount'] == Decimal('106.20')


def test_invoice_totals_round_to_cents():
    totals = calculate_invoice_totals([{'quantity': 3, 'unit_price': '33.33'}], '12.5', 5)
    assert totals['subtotal'] == Decimal('99.99')
    assert totals['discount_amount'] == Decimal('12.50')
    assert totals['tax_amount'] == Decimal('4.37')
    assert totals['total_amount'] == Decimal('91.86')


@pytest.mark.parametrize('price, discount, tax', [
    ('0.05', 10, 0),
    ('33.33', '12.5', 5),
    ('19.99', '7.5', '18'),
    ('0.15', 50, '12.5'),
])
def test_invoice_totals_add_up(price, discount, tax):
    totals = calculate_invoice_totals([{'quantity': 3, 'unit_price': price}], discount, tax)
    assert totals['total_amount'] == totals['subtotal'] - totals['discount_amount'] + totals['tax_amount']
    assert totals['taxable_amount'] == totals['subtotal'] - totals['discount_amount']


def test_overdue_helpers():
    inv = Invoice(status='pending', due_date=date(2025, 1, 10))
    assert is_invoice_overdue(inv, today=date(2025, 1, 12))
    assert calculate_days_overdue(inv.due_date, today=date(2025, 1, 12)) == 2
    inv.status = 'paid'
    assert not is_invoice_overdue(inv, today=date(2025, 1, 12))


def create(client, patient, **extra):
    payload = {
        'patientId': patient.id,
        'items': [{'description': 'General Consultation', 'category': 'consultation',
                   'quantity': 2, 'unitPrice': '50.00'}],
        'discountPercentage': 10,
        'taxPercentage': 18,
    }
    payload.update(extra)
    return client.post('/api/invoices', payload, format='json')


def test_receptionist_creates_invoice(receptionist_user, patient):
    r = create(client_for(receptionist_user), patient)
    assert r.status_code == 201, r.data
    data = r.data['data']
    assert data['subtotal'] == 100.0
    assert data['discountAmount'] == 10.0
    assert data['taxAmount'] == 16.2
    assert data['totalAmount'] == 106.2
    assert data['balanceAmount'] == 106.2
    assert data['status'] == 'pending'
    assert len(data['items']) == 1
    assert data['invoiceNumber'].startswith('INV-')


def test_client_supplied_totals_are_ignored(receptionist_user, patient):
    r = create(client_for(receptionist_user), patient, totalAmount=1, subtotal=1)
    assert r.data['data']['totalAmount'] == 106.2


def test_invoice_requires_items(receptionist_user, patient):
    r = create(client_for(receptionist_user), patient, items=[])
    assert r.status_code == 400


def test_calculate_endpoint(receptionist_user):
    r = client_for(receptionist_user).post('/api/invoices/calculate', {
        'items': [{'description': 'ECG', 'quantity': 2, 'unitPrice': 50}],
        'discountPercentage': 10, 'taxPercentage': 18,
    }, format='json')
    assert r.status_code == 200
    assert r.data['data'] == {'subtotal': 100.0, 'discountAmount': 10.0, 'taxableAmount': 90.0,
                              'taxAmount': 16.2, 'totalAmount': 106.2}


def test_partial_then_full_payment(receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = create(client, patient).data['data']
    url = f"/api/invoices/{invoice['id']}/payments"

    r = client.post(url, {'amount': '50.00', 'paymentMethod': 'cash'}, format='json')
    assert r.status_code == 201, r.data
    assert r.data['data']['invoice']['status'] == 'partially_paid'
    assert r.data['data']['invoice']['balanceAmount'] == 56.2

    r = client.post(url, {'amount': '60.00', 'paymentMethod': 'card'}, format='json')
    assert r.status_code == 400

    r = client.post(url, {'amount': '56.20', 'paymentMethod': 'card'}, format='json')
    assert r.status_code == 201
    assert r.data['data']['invoice']['status'] == 'paid'
    assert r.data['data']['invoice']['balanceAmount'] == 0.0
    assert Notification.objects.filter(recipient=patient.user, type='invoice_payment').count() == 2


def test_mark_paid(receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = create(client, patient).data['data']
    r = client.post(f"/api/invoices/{invoice['id']}/mark-paid", {'paymentMethod': 'upi'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'paid'
    assert r.data['data']['paidAmount'] == 106.2
    assert len(r.data['data']['payments']) == 1


def test_paid_invoice_cannot_be_edited(receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = create(client, patient).data['data']
    client.post(f"/api/invoices/{invoice['id']}/mark-paid", {}, format='json')
    r = client.patch(f"/api/invoices/{invoice['id']}", {'taxPercentage': 5}, format='json')
    assert r.status_code == 400


def test_editing_percentages_recomputes_totals(receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = create(client, patient).data['data']
    r = client.patch(f"/api/invoices/{invoice['id']}", {'discountPercentage': 0, 'taxPercentage': 0},
                     format='json')
    assert r.status_code == 200
    assert r.data['data']['totalAmount'] == 100.0


def test_patient_sees_only_own_invoices(receptionist_user, patient):
    client = client_for(receptionist_user)
    mine = create(client, patient).data['data']
    other = make_patient('patient2', first_name='Ravi')
    theirs = create(client, other).data['data']

    patient_client = client_for(patient.user)
    r = patient_client.get('/api/invoices')
    assert [i['id'] for i in r.data['data']] == [mine['id']]
    assert patient_client.get(f"/api/invoices/{theirs['id']}").status_code == 403
    assert patient_client.post(f"/api/invoices/{mine['id']}/payments",
                               {'amount': 1, 'paymentMethod': 'cash'}, format='json').status_code == 403


def test_doctor_cannot_create_invoices(doctor, patient):
    assert create(client_for(doctor.user), patient).status_code == 403


def test_overdue_command(receptionist_user, patient):
    client = client_for(receptionist_user)
    past = timezone.localdate() - timedelta(days=40)
    invoice = create(client, patient, invoiceDate=past.isoformat(),
                     dueDate=(past + timedelta(days=5)).isoformat()).data['data']
    Invoice.objects.filter(id=invoice['id']).update(status='pending')

    call_command('mark_overdue_invoices')
    assert Invoice.objects.get(id=invoice['id']).status == 'overdue'


def test_fully_discounted_invoice_is_settled(receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = create(client, patient, discountPercentage=100).data['data']
    assert invoice['totalAmount'] == 0.0
    assert invoice['status'] == 'paid'

    r = client.post(f"/api/invoices/{invoice['id']}/mark-paid", {}, format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['status'] == 'paid'
    assert r.data['data']['payments'] == []


def test_zero_balance_open_invoice_marked_paid(receptionist_user, patient):
    client = client_for(receptionist_user)
    invoice = create(client, patient, discountPercentage=100).data['data']
    Invoice.objects.filter(id=invoice['id']).update(status='overdue')

    r = client.post(f"/api/invoices/{invoice['id']}/mark-paid", {}, format='json')
    assert r.status_code == 200, r.data
    assert r.data['data']['status'] == 'paid'
    call_command('mark_overdue_invoices')
    assert Invoice.objects.get(id=invoice['id']).status == 'paid'
