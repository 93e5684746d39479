"""
Invoices and payments.

Totals are always computed server side by
``clinic.services.billing.calculate_invoice_totals``; client supplied
amounts other than line items and percentages are ignored.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import CanManageBilling
from clinic.serializers.billing import (
    CalculateTotalsSerializer,
    InvoiceListQuerySerializer,
    InvoiceSerializer,
    InvoiceUpdateSerializer,
    MarkPaidSerializer,
    PaymentSerializer,
)
from clinic.services.billing import (
    COMMON_SERVICES,
    PAYMENT_METHODS,
    billing_summary,
    calculate_invoice_totals,
    create_invoice,
    delete_invoice,
    ensure_can_view_invoice,
    filter_invoices,
    format_invoice,
    format_payment,
    get_invoice,
    mark_as_paid,
    record_payment,
    update_invoice,
)
from clinic.services.formatting import as_float
from clinic.services.patients import get_patient_for_user


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def invoices(request):
    user = request.user
    if request.method == 'POST':
        if request.user.role not in ('admin', 'receptionist'):
            raise PermissionDenied('you cannot create invoices')
        s = InvoiceSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = dict(s.validated_data)
        vd['items'] = [dict(item) for item in vd['items']]
        invoice = create_invoice(user, **vd)
        return Response({'ok': True, 'data': format_invoice(invoice, detail=True)}, status=status.HTTP_201_CREATED)

    q = InvoiceListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    if user.role == 'patient':
        own = get_patient_for_user(user)
        if own is None:
            return Response({'ok': True, 'data': []})
        vd['patient_id'] = own.id
    elif user.role not in ('admin', 'receptionist'):
        raise PermissionDenied('forbidden')
    qs = filter_invoices(**vd).order_by('-invoice_date', '-created_at')
    return Response({'ok': True, 'data': [format_invoice(i) for i in qs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanManageBilling])
def invoices_summary(request):
    q = InvoiceListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': billing_summary(filter_invoices(**q.validated_data))})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def billing_catalogue(request):
    """Common service prices and accepted payment methods for the invoice form."""
    return Response({'ok': True, 'data': {'services': COMMON_SERVICES, 'paymentMethods': PAYMENT_METHODS}})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageBilling])
def calculate_totals(request):
    s = CalculateTotalsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    totals = calculate_invoice_totals(vd['items'], vd['discount_percentage'], vd['tax_percentage'])
    return Response({'ok': True, 'data': {
        'subtotal': as_float(totals['subtotal']),
        'discountAmount': as_float(totals['discount_amount']),
        'taxableAmount': as_float(totals['taxable_amount']),
        'taxAmount': as_float(totals['tax_amount']),
        'totalAmount': as_float(totals['total_amount']),
    }})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def invoice_detail(request, pk: int):
    invoice = get_invoice(pk)
    ensure_can_view_invoice(request.user, invoice)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_invoice(invoice, detail=True)})

    if request.method == 'DELETE':
        if request.user.role != 'admin':
            raise PermissionDenied('only administrators delete invoices')
        delete_invoice(request.user, invoice)
        return Response(status=status.HTTP_204_NO_CONTENT)

    if request.user.role not in ('admin', 'receptionist'):
        raise PermissionDenied('you cannot edit invoices')
    s = InvoiceUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    fields = dict(s.validated_data)
    if 'items' in fields:
        fields['items'] = [dict(item) for item in fields['items']]
    invoice = update_invoice(request.user, invoice, fields)
    return Response({'ok': True, 'data': format_invoice(invoice, detail=True)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def invoice_payments(request, pk: int):
    invoice = get_invoice(pk)
    ensure_can_view_invoice(request.user, invoice)
    if request.method == 'POST':
        if request.user.role not in ('admin', 'receptionist'):
            raise PermissionDenied('you cannot record payments')
        s = PaymentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        payment = record_payment(request.user, invoice, **s.validated_data)
        invoice = get_invoice(pk)
        return Response({'ok': True, 'data': {
            'payment': format_payment(payment),
            'invoice': format_invoice(invoice),
        }}, status=status.HTTP_201_CREATED)
    return Response({'ok': True, 'data': [format_payment(p) for p in invoice.payments.all()]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, CanManageBilling])
def invoice_mark_paid(request, pk: int):
    invoice = get_invoice(pk)
    s = MarkPaidSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    invoice = mark_as_paid(request.user, invoice, **s.validated_data)
    return Response({'ok': True, 'data': format_invoice(invoice, detail=True)})
