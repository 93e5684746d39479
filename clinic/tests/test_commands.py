from io import StringIO

import pytest
from django.core.management import call_command

from clinic.models import Appointment, Bed, Invoice, Medicine, Patient, StaffMember, User

pytestmark = pytest.mark.django_db


def test_ensure_test_users_is_idempotent():
    call_command('ensure_test_users', stdout=StringIO())
    User.objects.filter(username='nurse1').update(is_active=False, role='patient')
    call_command('ensure_test_users', stdout=StringIO())

    usernames = ['admin1', 'doctor1', 'nurse1', 'reception1', 'lab1', 'patient1']
    assert User.objects.filter(username__in=usernames).count() == 6
    nurse = User.objects.get(username='nurse1')
    assert nurse.is_active and nurse.role == 'nurse'
    assert nurse.check_password('Hms@12345')
    assert StaffMember.objects.filter(user=nurse).count() == 1
    assert Patient.objects.filter(user__username='patient1').exists()


def test_seed_data():
    out = StringIO()
    call_command('seed_data', patients=5, seed=7, stdout=out)
    assert 'Demo data created.' in out.getvalue()
    assert Patient.objects.count() == 5
    assert Patient.objects.filter(user__username='patient.demo').exists()
    assert StaffMember.objects.filter(role='doctor').count() == 3
    assert Bed.objects.count() == 18
    assert Medicine.objects.count() == 6
    assert Appointment.objects.exists()
    completed = Appointment.objects.filter(status='completed').count()
    assert Invoice.objects.count() == completed
