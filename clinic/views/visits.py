"""
OPD/IPD visits and bed management.

An IPD admission occupies its bed in the same transaction that creates
the visit; discharge releases it.  Beds can also be assigned and freed
directly by front-desk and clinical staff.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsStaffRole, has_role
from clinic.serializers.visits import (
    AssignBedSerializer,
    BedListQuerySerializer,
    BedSerializer,
    DischargeSerializer,
    VisitListQuerySerializer,
    VisitSerializer,
    VisitUpdateSerializer,
    VitalsSerializer,
)
from clinic.services.patients import get_patient_for_user
from clinic.services.visits import (
    assign_bed,
    bed_summary,
    create_bed,
    create_visit,
    delete_bed,
    delete_visit,
    discharge_visit,
    ensure_can_view_visit,
    filter_beds,
    filter_visits,
    format_bed,
    format_discharge_summary,
    format_visit,
    format_vitals_row,
    free_bed,
    get_bed,
    get_discharge_summary,
    get_visit,
    record_vitals,
    update_bed,
    update_visit,
    visit_summary,
)

CLINICAL_OR_DESK = ('admin', 'doctor', 'nurse', 'receptionist')


def _require_clinical_or_desk(user) -> None:
    if not has_role(user, *CLINICAL_OR_DESK):
        raise PermissionDenied('you cannot modify visits')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def visits(request):
    user = request.user
    if request.method == 'POST':
        _require_clinical_or_desk(user)
        s = VisitSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        v = create_visit(user, **s.validated_data)
        return Response({'ok': True, 'data': format_visit(v)}, status=status.HTTP_201_CREATED)

    q = VisitListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    if user.role == 'patient':
        own = get_patient_for_user(user)
        if own is None:
            return Response({'ok': True, 'data': []})
        vd['patient_id'] = own.id
    elif not has_role(user, *CLINICAL_OR_DESK):
        raise PermissionDenied('forbidden')
    qs = filter_visits(**vd).order_by('-visit_date', '-created_at')
    return Response({'ok': True, 'data': [format_visit(v) for v in qs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def visits_summary(request):
    return Response({'ok': True, 'data': visit_summary()})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def visit_detail(request, pk: int):
    v = get_visit(pk)
    ensure_can_view_visit(request.user, v)
    if request.method == 'GET':
        data = format_visit(v)
        data['vitals'] = [format_vitals_row(row) for row in v.vitals.all()]
        return Response({'ok': True, 'data': data})

    if request.method == 'DELETE':
        if request.user.role != 'admin':
            raise PermissionDenied('only administrators delete visits')
        delete_visit(request.user, v)
        return Response(status=status.HTTP_204_NO_CONTENT)

    _require_clinical_or_desk(request.user)
    s = VisitUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    v = update_visit(request.user, v, dict(s.validated_data))
    return Response({'ok': True, 'data': format_visit(v)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def visit_discharge(request, pk: int):
    if not has_role(request.user, 'admin', 'doctor', 'nurse'):
        raise PermissionDenied('only clinical staff discharge patients')
    v = get_visit(pk)
    s = DischargeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = discharge_visit(request.user, v, dict(s.validated_data) or None)
    return Response({'ok': True, 'data': format_visit(v)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def visit_vitals(request, pk: int):
    v = get_visit(pk)
    ensure_can_view_visit(request.user, v)
    if request.method == 'POST':
        if not has_role(request.user, 'admin', 'doctor', 'nurse'):
            raise PermissionDenied('only clinical staff record vitals')
        s = VitalsSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        row = record_vitals(request.user, v, dict(s.validated_data))
        return Response({'ok': True, 'data': format_vitals_row(row)}, status=status.HTTP_201_CREATED)
    return Response({'ok': True, 'data': [format_vitals_row(row) for row in v.vitals.all()]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def visit_discharge_summary(request, pk: int):
    v = get_visit(pk)
    ensure_can_view_visit(request.user, v)
    return Response({'ok': True, 'data': format_discharge_summary(get_discharge_summary(v))})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def beds(request):
    if request.method == 'POST':
        if request.user.role != 'admin':
            raise PermissionDenied('only administrators add beds')
        s = BedSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        bed = create_bed(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_bed(bed)}, status=status.HTTP_201_CREATED)

    q = BedListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = filter_beds(**q.validated_data).order_by('ward', 'bed_number')
    return Response({'ok': True, 'data': [format_bed(b) for b in qs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def beds_summary(request):
    return Response({'ok': True, 'data': bed_summary()})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def bed_detail(request, pk: int):
    bed = get_bed(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_bed(bed)})
    if request.user.role != 'admin':
        raise PermissionDenied('only administrators edit beds')
    if request.method == 'DELETE':
        delete_bed(request.user, bed)
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = BedSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    bed = update_bed(request.user, bed, dict(s.validated_data))
    return Response({'ok': True, 'data': format_bed(bed)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def bed_assign(request, pk: int):
    _require_clinical_or_desk(request.user)
    s = AssignBedSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    bed = assign_bed(request.user, pk, s.validated_data['patient_id'])
    return Response({'ok': True, 'data': format_bed(bed)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def bed_free(request, pk: int):
    _require_clinical_or_desk(request.user)
    bed = free_bed(request.user, pk)
    return Response({'ok': True, 'data': format_bed(bed)})
