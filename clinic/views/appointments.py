"""
Appointment booking and lifecycle views.

Booking goes through ``clinic.services.appointments.book_appointment``,
which checks the slot and inserts the row under a lock on the doctor; a
lost race surfaces as HTTP 409 with code ``slot_unavailable``.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle

from clinic.permissions import CanManageAppointments, has_role
from clinic.serializers.appointments import (
    AppointmentListQuerySerializer,
    AppointmentStatusSerializer,
    AvailabilityQuerySerializer,
    BookAppointmentSerializer,
    CancelAppointmentSerializer,
    CompleteAppointmentSerializer,
    UpdateAppointmentSerializer,
)
from clinic.serializers.staff import DateQuerySerializer
from clinic.services.appointments import (
    appointment_summary,
    book_appointment,
    by_doctor,
    by_patient,
    cancel_appointment,
    change_status,
    complete_appointment,
    delete_appointment,
    ensure_can_view_appointment,
    filter_appointments,
    format_appointment,
    get_appointment,
    scope_for_user,
    update_appointment,
)
from clinic.services.patients import ensure_can_view_patient, get_patient, get_patient_for_user
from clinic.services.scheduling import doctor_availability
from clinic.services.staff import get_staff, get_staff_for_user
from clinic.throttling import WriteScopedRateThrottle


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([UserRateThrottle, WriteScopedRateThrottle])
def appointments(request):
    user = request.user
    if request.method == 'POST':
        s = BookAppointmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        if user.role == 'patient':
            own = get_patient_for_user(user)
            if own is None:
                raise ValidationError({'patientId': 'no patient record is linked to this account'})
            vd.setdefault('patient_id', own.id)
        elif not has_role(user, 'admin', 'doctor', 'nurse', 'receptionist'):
            raise PermissionDenied('you cannot book appointments')
        if not vd.get('patient_id'):
            raise ValidationError({'patientId': 'this field is required'})
        a = book_appointment(user, **vd)
        return Response({'ok': True, 'data': format_appointment(a)}, status=status.HTTP_201_CREATED)

    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    limit = vd.pop('limit', None)
    qs = scope_for_user(filter_appointments(**vd), user).order_by('-date', '-start_time')
    if limit:
        qs = qs[:limit]
    return Response({'ok': True, 'data': [format_appointment(a) for a in qs]})

appointments.cls.throttle_scope = 'booking'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointments_summary(request):
    qs = scope_for_user(filter_appointments(), request.user)
    return Response({'ok': True, 'data': appointment_summary(qs)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def availability(request):
    """Slots for ``doctorId`` on ``date``; each slot carries ``isAvailable``."""
    q = AvailabilityQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    doctor = get_staff(q.validated_data['doctor_id'])
    if doctor.role != 'doctor':
        raise ValidationError({'doctorId': 'selected staff member is not a doctor'})
    on_date = q.validated_data['date']
    return Response({'ok': True, 'data': {
        'doctorId': doctor.id,
        'date': on_date.isoformat(),
        'slots': doctor_availability(doctor, on_date),
    }})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_appointments(request, patient_id: int):
    patient = get_patient(patient_id)
    ensure_can_view_patient(request.user, patient)
    limit = request.query_params.get('limit')
    rows = by_patient(patient.id, int(limit) if limit and limit.isdigit() else None)
    return Response({'ok': True, 'data': [format_appointment(a) for a in rows]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanManageAppointments])
def doctor_appointments(request, doctor_id: int):
    doctor = get_staff(doctor_id)
    if request.user.role == 'doctor':
        me = get_staff_for_user(request.user)
        if me is None or me.id != doctor.id:
            raise PermissionDenied("you can only view your own schedule")
    q = DateQuerySerializer(data=request.query_params)
    on_date = q.validated_data['date'] if q.is_valid() else None
    return Response({'ok': True, 'data': [format_appointment(a) for a in by_doctor(doctor.id, on_date)]})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk: int):
    a = get_appointment(pk)
    ensure_can_view_appointment(request.user, a)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_appointment(a)})

    if request.method == 'DELETE':
        if request.user.role != 'admin':
            raise PermissionDenied('only administrators delete appointments; cancel instead')
        delete_appointment(request.user, a)
        return Response(status=status.HTTP_204_NO_CONTENT)

    if request.user.role == 'patient':
        raise PermissionDenied('patients reschedule by cancelling and booking again')
    s = UpdateAppointmentSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    a = update_appointment(request.user, a, dict(s.validated_data))
    return Response({'ok': True, 'data': format_appointment(a)})


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, CanManageAppointments])
def appointment_status(request, pk: int):
    a = get_appointment(pk)
    ensure_can_view_appointment(request.user, a)
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if vd['status'] == 'cancelled':
        a = cancel_appointment(request.user, a, vd.get('notes') or '')
    else:
        a = change_status(request.user, a, vd['status'], notes=vd.get('notes'))
    return Response({'ok': True, 'data': format_appointment(a)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def appointment_cancel(request, pk: int):
    a = get_appointment(pk)
    ensure_can_view_appointment(request.user, a)
    s = CancelAppointmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    a = cancel_appointment(request.user, a, s.validated_data['reason'])
    return Response({'ok': True, 'data': format_appointment(a)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageAppointments])
def appointment_complete(request, pk: int):
    a = get_appointment(pk)
    ensure_can_view_appointment(request.user, a)
    s = CompleteAppointmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    a = complete_appointment(request.user, a, s.validated_data['notes'],
                             follow_up_required=s.validated_data['follow_up_required'])
    return Response({'ok': True, 'data': format_appointment(a)})
