"""
Patient management views.

Staff can list, create, update and export patients; a patient may read
their own record.  Deletion is a soft delete (status ``inactive``)
unless an administrator passes ``hard=true``.
"""
from __future__ import annotations

from django.http import HttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsAdminRole, IsStaffRole, has_role
from clinic.serializers.patients import PatientListQuerySerializer, PatientSerializer
from clinic.services.patients import (
    create_patient,
    delete_patient,
    ensure_can_view_patient,
    export_patients_csv,
    filter_patients,
    format_patient,
    get_patient,
    patient_summary,
    update_patient,
)


def paginate(qs, page, page_size):
    if not page_size:
        return qs
    start = ((page or 1) - 1) * page_size
    return qs[start:start + page_size]


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients(request):
    if request.method == 'POST':
        s = PatientSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        p = create_patient(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_patient(p)}, status=status.HTTP_201_CREATED)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    page, page_size = vd.pop('page', None), vd.pop('pageSize', None)
    qs = filter_patients(**vd)
    total = qs.count()
    rows = paginate(qs, page, page_size)
    return Response({'ok': True, 'data': [format_patient(p) for p in rows], 'total': total})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients_summary(request):
    return Response({'ok': True, 'data': patient_summary()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def export_patients(request):
    """CSV download of the (optionally filtered) patient list."""
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    vd.pop('page', None)
    vd.pop('pageSize', None)
    body = export_patients_csv(filter_patients(**vd))
    resp = HttpResponse(body, content_type='text/csv')
    resp['Content-Disposition'] = f'attachment; filename="patients_{timezone.localdate():%Y-%m-%d}.csv"'
    return resp


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def patient_detail(request, pk: int):
    p = get_patient(pk)
    ensure_can_view_patient(request.user, p)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_patient(p)})

    if not has_role(request.user, 'admin', 'doctor', 'nurse', 'receptionist'):
        raise PermissionDenied('you cannot modify patient records')

    if request.method == 'DELETE':
        hard = str(request.query_params.get('hard', '')).lower() in ('1', 'true', 'yes')
        if hard and request.user.role != 'admin':
            raise PermissionDenied('only administrators may permanently delete patients')
        delete_patient(request.user, p, hard=hard)
        return Response({'ok': True})

    s = PatientSerializer(data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    p = update_patient(request.user, p, dict(s.validated_data))
    return Response({'ok': True, 'data': format_patient(p)})
