"""Role dashboards. ``/api/dashboard`` picks the caller's own role."""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsAdminRole, IsClinicalRole, IsDoctorRole, IsFrontDeskRole, IsPatientRole
from clinic.services.dashboards import (
    admin_dashboard,
    dashboard_for,
    doctor_dashboard,
    nurse_dashboard,
    patient_dashboard,
    receptionist_dashboard,
)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_dashboard(request):
    return Response({'ok': True, 'data': dashboard_for(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_dashboard_view(request):
    return Response({'ok': True, 'data': admin_dashboard()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def doctor_dashboard_view(request):
    return Response({'ok': True, 'data': doctor_dashboard(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicalRole])
def nurse_dashboard_view(request):
    return Response({'ok': True, 'data': nurse_dashboard()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDeskRole])
def receptionist_dashboard_view(request):
    return Response({'ok': True, 'data': receptionist_dashboard()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def patient_dashboard_view(request):
    return Response({'ok': True, 'data': patient_dashboard(request.user)})
