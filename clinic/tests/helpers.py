"""Factories shared by the API tests."""
from rest_framework.test import APIClient

from clinic.models import Patient, StaffMember, User

PASSWORD = 'P@ssw0rd-123'


def make_user(username, role, **extra):
    return User.objects.create_user(username=username, password=PASSWORD, role=role, **extra)


def make_staff(username, role, **extra):
    user = make_user(username, role, first_name=username.title(), last_name='Staff')
    staff = StaffMember.objects.create(user=user, first_name=user.first_name, last_name='Staff',
                                       role=role, **extra)
    return user, staff


def make_patient(username=None, first_name='Asha', last_name='Verma', **extra):
    user = make_user(username, 'patient') if username else None
    return Patient.objects.create(user=user, first_name=first_name, last_name=last_name, **extra)


def client_for(user):
    """Return an APIClient authenticated as ``user``."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client
