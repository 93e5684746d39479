"""
Authentication views and account helpers.

Login issues both the legacy DRF token and a simplejwt access/refresh
pair.  Keeping these views apart from ``clinic.authentication`` avoids
circular imports when DRF initialises authentication classes.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView

from clinic.models import User
from clinic.serializers.auth import (
    ChangePasswordSerializer,
    LoginSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
)
from clinic.services.audit import log_action
from clinic.services.patients import get_patient_for_user, register_patient_account
from clinic.services.staff import get_staff_for_user

logger = logging.getLogger(__name__)


def format_user(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'name': user.get_full_name() or user.username,
        'role': user.role,
        'phone': user.phone,
        'isActive': user.is_active,
        'mustChangePassword': user.must_change_password,
        'lastLogin': user.last_login.isoformat() if user.last_login else None,
        'dateJoined': user.date_joined.isoformat() if user.date_joined else None,
    }


def _profile_links(user: User) -> dict:
    patient = get_patient_for_user(user) if user.role == 'patient' else None
    staff = get_staff_for_user(user) if user.role != 'patient' else None
    return {
        'patientId': patient.id if patient else None,
        'staffId': staff.id if staff else None,
    }


def _issue_tokens(user: User) -> dict:
    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return {
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
    }


# ---------------------------------------------------------------------
# Username/password login
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """Exchange username/password for a DRF token and a JWT pair."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    password = s.validated_data['password']
    ip = request.META.get('REMOTE_ADDR')

    user = authenticate(request, username=username, password=password)
    if not user:
        # only the username is recorded for failed attempts
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'username': username, 'ip': ip})
        raise AuthenticationFailed('invalid username or password')

    user.last_login = timezone.now()
    user.login_count += 1
    user.save(update_fields=['last_login', 'login_count'])
    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})

    payload = {
        'ok': True,
        **_issue_tokens(user),
        'role': user.role,
        'mustChangePassword': user.must_change_password,
        'user': {**format_user(user), **_profile_links(user)},
    }
    return Response(payload, status=200)

# ScopedRateThrottle reads throttle_scope from the wrapped view class
login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    """Patient self-registration; returns tokens so the client is signed in."""
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user, patient, _ = register_patient_account(**s.validated_data)
    payload = {
        'ok': True,
        **_issue_tokens(user),
        'role': user.role,
        'user': {**format_user(user), 'patientId': patient.id, 'staffId': None},
        'patient': {'id': patient.id, 'patientId': patient.patient_id},
    }
    return Response(payload, status=201)

register_view.cls.throttle_scope = 'login'


# ---------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------
@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def me_view(request):
    user = request.user
    if request.method == 'PATCH':
        s = ProfileUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        fields = s.validated_data
        for key, value in fields.items():
            setattr(user, key, value)
        if fields:
            user.save(update_fields=list(fields))
        log_action(user=user, action='profile_update', object_type='user', object_id=user.id,
                   detail={'fields': sorted(fields)})
    return Response({'ok': True, 'data': {**format_user(user), **_profile_links(user)}})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = request.user
    if not user.check_password(s.validated_data['current_password']):
        raise ValidationError({'currentPassword': 'current password is incorrect'})
    new_password = s.validated_data['new_password']
    try:
        validate_password(new_password, user=user)
    except DjangoValidationError as e:
        raise ValidationError({'newPassword': e.messages})
    user.set_password(new_password)
    user.must_change_password = False
    user.save(update_fields=['password', 'must_change_password'])
    # old tokens stop working; the client logs in again
    Token.objects.filter(user=user).delete()
    log_action(user=user, action='password_change', object_type='user', object_id=user.id)
    return Response({'ok': True, 'data': _issue_tokens(user)})


# ---------------------------------------------------------------------
# JWT: refresh & logout
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from refresh token."""
    view = TokenRefreshView.as_view()
    resp = view(request._request)
    if isinstance(resp, Response):
        data = dict(resp.data)
        if 'access' in data and 'jwt_access' not in data:
            data['jwt_access'] = data.pop('access')
        return Response(data, status=resp.status_code)
    return resp


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist current user's refresh tokens (all or a given one)."""
    refresh = request.data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            raise ValidationError({'refresh': str(e)})
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    Token.objects.filter(user=request.user).delete()
    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.id,
               detail={'blacklisted': count})
    return Response({'ok': True, 'blacklisted': count})
