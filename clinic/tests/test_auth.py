import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from clinic.models import AuditEvent, Patient, User
from clinic.tests.helpers import PASSWORD, client_for, make_staff, make_user

pytestmark = pytest.mark.django_db


def login(client, username, password=PASSWORD):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_login_returns_jwt_and_legacy_token():
    make_user('u_jwt', 'patient')
    r = login(APIClient(), 'u_jwt')
    assert r.status_code == 200
    assert r.data['token']
    assert r.data['jwt_access']
    assert r.data['jwt_refresh']
    assert r.data['role'] == 'patient'
    assert r.data['user']['username'] == 'u_jwt'


def test_login_ignores_role_in_payload():
    u = make_user('u1', 'patient')
    r = APIClient().post(reverse('login_view'), {'username': 'u1', 'password': PASSWORD, 'role': 'admin'},
                         format='json')
    assert r.status_code == 200
    assert r.data['role'] == 'patient'
    u.refresh_from_db()
    assert u.role == 'patient'


def test_failed_login_is_rejected_and_audited():
    make_user('u2', 'patient')
    r = login(APIClient(), 'u2', 'wrong-password')
    assert r.status_code == 401
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'authentication_failed'
    assert AuditEvent.objects.filter(action='login', detail__result='fail').exists()


def test_login_counts_successful_logins():
    u = make_user('u3', 'nurse')
    login(APIClient(), 'u3')
    login(APIClient(), 'u3')
    u.refresh_from_db()
    assert u.login_count == 2
    assert u.last_login is not None


def test_token_and_bearer_authentication():
    make_user('u4', 'doctor')
    data = login(APIClient(), 'u4').data

    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Token {data['token']}")
    assert client.get('/api/auth/me').data['data']['username'] == 'u4'

    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['jwt_access']}")
    assert client.get('/api/auth/me').data['data']['role'] == 'doctor'


def test_unauthenticated_request_is_401():
    r = APIClient().get('/api/patients')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'not_authenticated'


def test_refresh_and_logout():
    make_user('u5', 'patient')
    data = login(APIClient(), 'u5').data
    client = APIClient()

    r = client.post('/api/auth/refresh', {'refresh': data['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['jwt_access']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['jwt_access']}")
    r = client.post('/api/auth/logout', {'refresh': data['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1

    r = APIClient().post('/api/auth/refresh', {'refresh': data['jwt_refresh']}, format='json')
    assert r.status_code == 401


def test_register_creates_patient_record():
    r = APIClient().post('/api/auth/register', {
        'username': 'newpatient', 'password': 'Str0ng-Passw0rd!', 'email': 'new@example.com',
        'firstName': 'Nina', 'lastName': 'Roy', 'phone': '9876543210',
    }, format='json')
    assert r.status_code == 201, r.data
    assert r.data['role'] == 'patient'
    assert r.data['token']
    user = User.objects.get(username='newpatient')
    assert Patient.objects.filter(user=user).exists()


def test_change_password_clears_flag_and_rotates_token():
    u = make_user('u6', 'nurse', must_change_password=True)
    old_token = login(APIClient(), 'u6').data['token']

    client = client_for(u)
    r = client.post('/api/auth/change-password', {'currentPassword': 'nope', 'newPassword': 'An0ther-Secret!'},
                    format='json')
    assert r.status_code == 400
    r = client.post('/api/auth/change-password', {'currentPassword': PASSWORD, 'newPassword': 'An0ther-Secret!'},
                    format='json')
    assert r.status_code == 200
    assert r.data['data']['token'] != old_token
    u.refresh_from_db()
    assert u.must_change_password is False
    assert u.check_password('An0ther-Secret!')


def test_admin_creates_staff_account(admin_user):
    r = client_for(admin_user).post('/api/admin/create-staff', {
        'email': 'nurse.joy@example.com', 'firstName': 'Joy', 'lastName': 'Das', 'role': 'nurse',
    }, format='json')
    assert r.status_code == 201, r.data
    data = r.data['data']
    assert data['initialPassword']
    assert data['user']['mustChangePassword'] is True
    assert data['staff']['staffId'].startswith('NUR')

    r = login(APIClient(), 'nurse.joy@example.com', data['initialPassword'])
    assert r.status_code == 200
    assert r.data['mustChangePassword'] is True


def test_non_admin_cannot_create_staff(nurse_user):
    r = client_for(nurse_user).post('/api/admin/create-staff', {
        'email': 'x@example.com', 'firstName': 'X', 'lastName': 'Y', 'role': 'nurse',
    }, format='json')
    assert r.status_code == 403


def test_user_cannot_promote_themselves(nurse_user):
    r = client_for(nurse_user).patch(f'/api/users/{nurse_user.id}', {'role': 'admin', 'firstName': 'Joy'},
                                     format='json')
    assert r.status_code == 200
    nurse_user.refresh_from_db()
    assert nurse_user.role == 'nurse'
    assert nurse_user.first_name == 'Joy'


def test_user_detail_is_private(nurse_user):
    other, _ = make_staff('nurse2', 'nurse')
    assert client_for(nurse_user).get(f'/api/users/{other.id}').status_code == 403


def test_password_reset_request_flow(admin_user):
    r = APIClient().post('/api/password-reset-request', {'email': 'lost@example.com', 'role': 'doctor'},
                         format='json')
    assert r.status_code == 201
    req_id = r.data['data']['id']

    client = client_for(admin_user)
    pending = client.get('/api/admin/password-reset-requests', {'status': 'pending'}).data['data']
    assert [p['id'] for p in pending] == [req_id]
    r = client.post(f'/api/admin/password-reset-requests/{req_id}/resolve', {'status': 'resolved'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'resolved'


def test_healthz():
    r = APIClient().get('/healthz')
    assert r.status_code == 200


@pytest.mark.parametrize('path', ['/api/upload', '/api/delete-file', '/api/cloudinary-delete'])
def test_upload_paths_are_gone(path):
    r = APIClient().post(path)
    assert r.status_code == 410
    assert r.json()['error']['code'] == 'gone'
