from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone

from clinic.tests.helpers import make_patient, make_staff


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters and the KPI payload live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def admin_user(db):
    user, _ = make_staff('admin1', 'admin')
    return user


@pytest.fixture
def doctor(db):
    _, staff = make_staff('doctor1', 'doctor', specialization='Cardiology', consultation_fee='500.00')
    return staff


@pytest.fixture
def nurse_user(db):
    user, _ = make_staff('nurse1', 'nurse')
    return user


@pytest.fixture
def receptionist_user(db):
    user, _ = make_staff('reception1', 'receptionist')
    return user


@pytest.fixture
def patient(db):
    return make_patient('patient1')


@pytest.fixture
def booking_date():
    return timezone.localdate() + timedelta(days=7)
