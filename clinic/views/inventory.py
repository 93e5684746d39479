"""Pharmacy inventory: medicines, stock movements and vendors."""
from __future__ import annotations

from django.http import HttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Vendor
from clinic.permissions import CanManageInventory, IsStaffRole, has_role
from clinic.serializers.inventory import (
    DispenseSerializer,
    MedicineListQuerySerializer,
    MedicineSerializer,
    RestockSerializer,
    VendorSerializer,
)
from clinic.services.inventory import (
    create_medicine,
    create_vendor,
    delete_medicine,
    delete_vendor,
    dispense_medicine,
    export_medicines_csv,
    filter_medicines,
    format_dispense,
    format_medicine,
    format_vendor,
    get_medicine,
    get_vendor,
    inventory_summary,
    restock_medicine,
    total_stock_by_category,
    update_medicine,
    update_vendor,
)

INVENTORY_ROLES = ('admin', 'nurse')


def _require_inventory_role(user) -> None:
    if not has_role(user, *INVENTORY_ROLES):
        raise PermissionDenied('only administrators and nurses manage inventory')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medicines(request):
    if request.method == 'POST':
        _require_inventory_role(request.user)
        s = MedicineSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        m = create_medicine(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_medicine(m)}, status=status.HTTP_201_CREATED)

    q = MedicineListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    rows = filter_medicines(**q.validated_data)
    return Response({'ok': True, 'data': [format_medicine(m) for m in rows]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medicines_summary(request):
    data = inventory_summary()
    data['stockByCategory'] = total_stock_by_category()
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanManageInventory])
def export_medicines(request):
    q = MedicineListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    body = export_medicines_csv(filter_medicines(**q.validated_data))
    resp = HttpResponse(body, content_type='text/csv')
    resp['Content-Disposition'] = f'attachment; filename="inventory_{timezone.localdate():%Y-%m-%d}.csv"'
    return resp


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medicine_detail(request, pk: int):
    m = get_medicine(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_medicine(m)})
    _require_inventory_role(request.user)
    if request.method == 'DELETE':
        delete_medicine(request.user, m)
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = MedicineSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    m = update_medicine(request.user, m, dict(s.validated_data))
    return Response({'ok': True, 'data': format_medicine(m)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageInventory])
def medicine_restock(request, pk: int):
    s = RestockSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    m = restock_medicine(request.user, pk, **s.validated_data)
    return Response({'ok': True, 'data': format_medicine(m)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medicine_dispense(request, pk: int):
    if request.method == 'POST':
        if not has_role(request.user, 'admin', 'nurse', 'doctor'):
            raise PermissionDenied('you cannot dispense medicines')
        s = DispenseSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        d = dispense_medicine(request.user, pk, **s.validated_data)
        return Response({'ok': True, 'data': {
            'dispense': format_dispense(d),
            'medicine': format_medicine(get_medicine(pk)),
        }}, status=status.HTTP_201_CREATED)
    m = get_medicine(pk)
    rows = m.dispenses.select_related('medicine', 'patient').order_by('-created_at')[:100]
    return Response({'ok': True, 'data': [format_dispense(d) for d in rows]})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def vendors(request):
    if request.method == 'POST':
        _require_inventory_role(request.user)
        s = VendorSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        v = create_vendor(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_vendor(v)}, status=status.HTTP_201_CREATED)
    qs = Vendor.objects.order_by('name')
    if request.query_params.get('active') in ('1', 'true'):
        qs = qs.filter(is_active=True)
    return Response({'ok': True, 'data': [format_vendor(v) for v in qs]})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def vendor_detail(request, pk: int):
    v = get_vendor(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_vendor(v)})
    _require_inventory_role(request.user)
    if request.method == 'DELETE':
        delete_vendor(request.user, v)
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = VendorSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    v = update_vendor(request.user, v, dict(s.validated_data))
    return Response({'ok': True, 'data': format_vendor(v)})
