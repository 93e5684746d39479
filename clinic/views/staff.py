"""Staff directory, schedules and doctor availability."""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsAdminRole, IsStaffRole
from clinic.serializers.staff import (
    DateQuerySerializer,
    DoctorQuerySerializer,
    ScheduleSerializer,
    StaffListQuerySerializer,
    StaffSerializer,
)
from clinic.services.scheduling import doctor_availability
from clinic.services.staff import (
    create_staff_member,
    delete_staff_member,
    filter_staff,
    find_doctors,
    format_schedule,
    format_staff,
    get_staff,
    replace_schedule,
    staff_summary,
    update_staff_member,
)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def staff_list(request):
    if request.method == 'POST':
        if request.user.role != 'admin':
            raise PermissionDenied('only administrators add staff')
        s = StaffSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        member = create_staff_member(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_staff(member)}, status=status.HTTP_201_CREATED)

    q = StaffListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = filter_staff(**q.validated_data)
    return Response({'ok': True, 'data': [format_staff(m) for m in qs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def staff_summary_view(request):
    return Response({'ok': True, 'data': staff_summary()})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctors(request):
    """Active doctors; patients use this to pick whom to book with."""
    q = DoctorQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    found = find_doctors(specialization=vd.get('specialization'), department=vd.get('department'),
                         on_date=vd.get('date'))
    return Response({'ok': True, 'data': [format_staff(d, include_schedule=True) for d in found]})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def staff_detail(request, pk: int):
    member = get_staff(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_staff(member, include_schedule=True)})

    own = member.user_id == request.user.id
    if request.user.role != 'admin' and not own:
        raise PermissionDenied('only administrators edit other staff records')

    if request.method == 'DELETE':
        if request.user.role != 'admin':
            raise PermissionDenied('only administrators remove staff')
        hard = str(request.query_params.get('hard', '')).lower() in ('1', 'true', 'yes')
        delete_staff_member(request.user, member, hard=hard)
        return Response({'ok': True})

    s = StaffSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    fields = dict(s.validated_data)
    if request.user.role != 'admin':
        for key in ('role', 'status', 'consultation_fee', 'hire_date'):
            fields.pop(key, None)
    member = update_staff_member(request.user, member, fields)
    return Response({'ok': True, 'data': format_staff(member)})


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsStaffRole])
def staff_schedule(request, pk: int):
    member = get_staff(pk)
    if request.method == 'PUT':
        if request.user.role != 'admin' and member.user_id != request.user.id:
            raise PermissionDenied('only administrators edit other schedules')
        s = ScheduleSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        rows = replace_schedule(request.user, member, s.validated_data['schedule'])
    else:
        rows = member.schedules.all()
    return Response({'ok': True, 'data': [format_schedule(r) for r in rows]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def staff_availability(request, pk: int):
    q = DateQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    member = get_staff(pk)
    slots = doctor_availability(member, q.validated_data['date'])
    return Response({'ok': True, 'data': slots})
