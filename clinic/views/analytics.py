"""
KPI and chart endpoints.

The KPI payload is cached (``CLINIC_KPI_CACHE_SECONDS``); pass
``?refresh=true`` to recompute it immediately.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment
from clinic.permissions import IsAdminRole, IsStaffRole
from clinic.serializers.analytics import RefreshQuerySerializer, RevenueTrendQuerySerializer
from clinic.services.analytics import (
    appointments_by_time_slot,
    daily_revenue_trends,
    doctor_analytics,
    get_kpi_metrics,
    inventory_usage,
    monthly_patient_visits,
    patient_analytics,
    top_dispensed_medicines,
)
from clinic.services.patients import ensure_can_view_patient, get_patient
from clinic.services.staff import get_staff


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def kpis(request):
    q = RefreshQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    refresh = q.validated_data['refresh'] and request.user.role == 'admin'
    return Response({'ok': True, 'data': get_kpi_metrics(refresh=refresh)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def revenue_trends(request):
    q = RevenueTrendQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': daily_revenue_trends(q.validated_data['days'])})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def monthly_visits(request):
    return Response({'ok': True, 'data': monthly_patient_visits()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def inventory_usage_view(request):
    return Response({'ok': True, 'data': {
        'byCategory': inventory_usage(),
        'topDispensed': top_dispensed_medicines(),
    }})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointments_by_slot(request):
    qs = Appointment.objects.exclude(status=Appointment.STATUS_CANCELLED).only('start_time')
    return Response({'ok': True, 'data': appointments_by_time_slot(qs)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def doctor_analytics_view(request, pk: int):
    doctor = get_staff(pk)
    if request.user.role == 'doctor' and doctor.user_id != request.user.id:
        raise PermissionDenied('doctors can only view their own analytics')
    return Response({'ok': True, 'data': doctor_analytics(doctor)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_analytics_view(request, pk: int):
    patient = get_patient(pk)
    ensure_can_view_patient(request.user, patient)
    return Response({'ok': True, 'data': patient_analytics(patient)})
