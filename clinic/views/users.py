"""
User administration.

``/api/users`` is the legacy REST surface for account management.  Only
administrators list or delete users; a user may read and update their
own record.  Passwords and e-mail addresses are never changed here.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from clinic.auth_views import format_user
from clinic.models import PasswordResetRequest, User
from clinic.permissions import IsAdminRole
from clinic.serializers.auth import (
    CreateStaffSerializer,
    PasswordResetRequestSerializer,
    ResetStaffPasswordSerializer,
    ResolveResetRequestSerializer,
    UserUpdateSerializer,
)
from clinic.services.audit import log_action
from clinic.services.staff import (
    create_password_reset_request,
    create_staff_account,
    format_reset_request,
    format_staff,
    reset_staff_password,
    resolve_password_reset_request,
)


def _get_user(pk: int) -> User:
    user = User.objects.filter(id=pk).first()
    if not user:
        raise NotFound('user not found')
    return user


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def list_users(request):
    qs = User.objects.order_by('-date_joined')
    role = request.query_params.get('role')
    if role:
        qs = qs.filter(role=role)
    limit = request.query_params.get('limit')
    if limit:
        try:
            qs = qs[:max(1, min(int(limit), 500))]
        except ValueError:
            raise ValidationError({'limit': 'must be an integer'})
    return Response({'ok': True, 'data': [format_user(u) for u in qs]})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def user_detail(request, pk: int):
    actor = request.user
    is_admin = actor.role == 'admin'
    if not is_admin and actor.id != pk:
        raise PermissionDenied('forbidden for this user')
    user = _get_user(pk)

    if request.method == 'GET':
        return Response({'ok': True, 'data': format_user(user)})

    if request.method == 'DELETE':
        if not is_admin:
            raise PermissionDenied('only administrators delete users')
        if user.id == actor.id:
            raise ValidationError('you cannot delete your own account')
        user.delete()
        log_action(user=actor, action='user_delete', object_type='user', object_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    s = UserUpdateSerializer(data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    fields = dict(s.validated_data)
    if not is_admin:
        # role and activation are administrator decisions
        fields.pop('role', None)
        fields.pop('is_active', None)
    for key, value in fields.items():
        setattr(user, key, value)
    if fields:
        user.save(update_fields=list(fields))
    log_action(user=actor, action='user_update', object_type='user', object_id=user.id,
               detail={'fields': sorted(fields)})
    return Response({'ok': True, 'data': format_user(user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def create_staff(request):
    """Create a staff login plus its staff record; the initial password is returned once."""
    s = CreateStaffSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user, staff, password = create_staff_account(request.user, **s.validated_data)
    payload = {
        'user': format_user(user),
        'staff': format_staff(staff),
        'initialPassword': password,
    }
    return Response({'ok': True, 'data': payload}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def reset_staff_password_view(request):
    s = ResetStaffPasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user, password = reset_staff_password(request.user, **s.validated_data)
    return Response({'ok': True, 'data': {'userId': user.id, 'temporaryPassword': password}})


@api_view(['POST'])
@permission_classes([AllowAny])
def password_reset_request_view(request):
    """Anonymous request asking an administrator to reset a password."""
    s = PasswordResetRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = create_password_reset_request(**s.validated_data)
    return Response({'ok': True, 'data': {'id': req.id, 'status': req.status}}, status=201)

password_reset_request_view.cls.throttle_scope = 'password_reset'


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def list_password_reset_requests(request):
    qs = PasswordResetRequest.objects.all()
    st = request.query_params.get('status')
    if st:
        qs = qs.filter(status=st)
    return Response({'ok': True, 'data': [format_reset_request(r) for r in qs]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def resolve_password_reset_request_view(request, pk: int):
    req = PasswordResetRequest.objects.filter(id=pk).first()
    if not req:
        raise NotFound('reset request not found')
    s = ResolveResetRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = resolve_password_reset_request(request.user, req, s.validated_data['status'])
    return Response({'ok': True, 'data': format_reset_request(req)})
