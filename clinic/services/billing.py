"""
Invoices and payments.

Totals are computed with ``Decimal`` and stored rounded to cents::

    subtotal = sum(quantity * unit_price)
    discount = subtotal * discount_pct / 100
    tax      = (subtotal - discount) * tax_pct / 100
    total    = subtotal - discount + tax

``balance = total - paid`` is kept in sync on every write.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import bleach
from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.models import Invoice, InvoiceItem, Patient, Payment
from clinic.realtime.events import broadcast_refresh
from clinic.services.audit import log_action
from clinic.services.formatting import as_float, format_currency, format_date, money
from clinic.services.notifications import notify

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')

COMMON_SERVICES = [
    {'name': 'General Consultation', 'category': 'consultation', 'price': 500},
    {'name': 'Specialist Consultation', 'category': 'consultation', 'price': 800},
    {'name': 'Emergency Consultation', 'category': 'consultation', 'price': 1000},
    {'name': 'Blood Test - CBC', 'category': 'test', 'price': 300},
    {'name': 'Blood Test - Lipid Profile', 'category': 'test', 'price': 600},
    {'name': 'X-Ray Chest', 'category': 'test', 'price': 400},
    {'name': 'ECG', 'category': 'test', 'price': 200},
    {'name': 'Ultrasound', 'category': 'test', 'price': 800},
    {'name': 'General Ward Bed (per day)', 'category': 'bed_charge', 'price': 1500},
    {'name': 'Private Room (per day)', 'category': 'bed_charge', 'price': 3000},
    {'name': 'ICU Bed (per day)', 'category': 'bed_charge', 'price': 5000},
    {'name': 'Operation Theater', 'category': 'procedure', 'price': 10000},
    {'name': 'Dressing', 'category': 'procedure', 'price': 200},
    {'name': 'Injection', 'category': 'procedure', 'price': 100},
]
PAYMENT_METHODS = [{'value': value, 'label': label} for value, label in Invoice.PAYMENT_METHOD_CHOICES]

OPEN_STATUSES = ('pending', 'partially_paid', 'overdue')


def _dec(value) -> Decimal:
    if value is None or value == '':
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def calculate_invoice_totals(items: Iterable[dict], discount_percentage=0, tax_percentage=0) -> dict:
    """Return subtotal, discount, taxable, tax and total amounts for ``items``.

    Each item needs ``quantity`` and ``unit_price``.
    """
    subtotal = money(sum((_dec(i.get('quantity')) * _dec(i.get('unit_price')) for i in items), ZERO))
    discount = money(subtotal * _dec(discount_percentage) / HUNDRED)
    # total is built from the rounded parts
    taxable = subtotal - discount
    tax = money(taxable * _dec(tax_percentage) / HUNDRED)
    return {
        'subtotal': subtotal,
        'discount_amount': discount,
        'taxable_amount': taxable,
        'tax_amount': tax,
        'total_amount': taxable + tax,
    }


def _validate_items(items: list[dict]) -> None:
    if not items:
        raise ValidationError({'items': 'at least one item is required'})
    for idx, item in enumerate(items):
        if not (item.get('description') or '').strip():
            raise ValidationError({f'items[{idx}]': 'description is required'})
        if _dec(item.get('quantity')) <= 0:
            raise ValidationError({f'items[{idx}]': 'quantity must be positive'})
        if _dec(item.get('unit_price')) < 0:
            raise ValidationError({f'items[{idx}]': 'unit price cannot be negative'})


def _validate_percentages(discount, tax) -> None:
    for name, value in (('discountPercentage', discount), ('taxPercentage', tax)):
        if not ZERO <= _dec(value) <= HUNDRED:
            raise ValidationError({name: 'must be between 0 and 100'})


def _settle_status(invoice: Invoice) -> None:
    invoice.balance_amount = money(invoice.total_amount - invoice.paid_amount)
    if invoice.status in ('draft', 'cancelled'):
        return
    if invoice.balance_amount <= 0:
        invoice.status = 'paid'
    elif invoice.paid_amount > 0:
        invoice.status = 'partially_paid'
    elif is_invoice_overdue(invoice):
        invoice.status = 'overdue'
    else:
        invoice.status = 'pending'


def _apply_totals(invoice: Invoice, items: list[dict]) -> None:
    totals = calculate_invoice_totals(items, invoice.discount_percentage, invoice.tax_percentage)
    invoice.subtotal = totals['subtotal']
    invoice.discount_amount = totals['discount_amount']
    invoice.tax_amount = totals['tax_amount']
    invoice.total_amount = totals['total_amount']
    if invoice.paid_amount > invoice.total_amount:
        raise ValidationError({'items': 'invoice total cannot be lower than the amount already paid'})
    _settle_status(invoice)


def _write_items(invoice: Invoice, items: list[dict]) -> None:
    InvoiceItem.objects.filter(invoice=invoice).delete()
    InvoiceItem.objects.bulk_create([
        InvoiceItem(
            invoice=invoice,
            description=bleach.clean(item['description'].strip(), tags=set(), strip=True),
            category=item.get('category') or 'other',
            quantity=_dec(item.get('quantity')),
            unit_price=money(_dec(item.get('unit_price'))),
            total=money(_dec(item.get('quantity')) * _dec(item.get('unit_price'))),
        )
        for item in items
    ])


def get_invoice(pk: int) -> Invoice:
    invoice = Invoice.objects.select_related('patient', 'doctor').filter(id=pk).first()
    if not invoice:
        raise NotFound('invoice not found')
    return invoice


def ensure_can_view_invoice(user, invoice: Invoice) -> None:
    if getattr(user, 'role', '') in ('admin', 'receptionist'):
        return
    if getattr(user, 'role', '') == 'patient' and invoice.patient.user_id == user.id:
        return
    raise PermissionDenied('forbidden for this invoice')


@transaction.atomic
def create_invoice(actor, *, patient_id: int, items: list[dict], doctor_id: Optional[int] = None,
                   visit_id: Optional[int] = None, visit_type: str = 'opd', invoice_date: Optional[date] = None,
                   due_date: Optional[date] = None, discount_percentage=0, tax_percentage=0,
                   payment_method: str = '', notes: str = '', status: str = 'pending') -> Invoice:
    if not Patient.objects.filter(id=patient_id).exists():
        raise NotFound('patient not found')
    if status not in ('draft', 'pending'):
        raise ValidationError({'status': 'new invoices are draft or pending'})
    _validate_items(items)
    _validate_percentages(discount_percentage, tax_percentage)
    invoice_date = invoice_date or timezone.localdate()
    invoice = Invoice(
        patient_id=patient_id,
        doctor_id=doctor_id,
        visit_id=visit_id,
        visit_type=visit_type,
        invoice_date=invoice_date,
        due_date=due_date or invoice_date + timedelta(days=settings.CLINIC_INVOICE_DUE_DAYS),
        discount_percentage=_dec(discount_percentage),
        tax_percentage=_dec(tax_percentage),
        payment_method=payment_method,
        notes=bleach.clean(notes or '', tags=set(), strip=True),
        status=status,
        created_by=actor if getattr(actor, 'is_authenticated', False) else None,
    )
    _apply_totals(invoice, items)
    invoice.save()
    _write_items(invoice, items)
    log_action(user=actor, action='invoice_create', object_type='invoice', object_id=invoice.id,
               detail={'invoiceNumber': invoice.invoice_number, 'total': str(invoice.total_amount)})
    broadcast_refresh(['invoices'])
    return invoice


@transaction.atomic
def update_invoice(actor, invoice: Invoice, fields: dict) -> Invoice:
    """Apply edits; totals are recomputed when items or percentages change."""
    invoice = Invoice.objects.select_for_update().get(id=invoice.id)
    if invoice.status in ('paid', 'cancelled'):
        raise ValidationError({'status': f'cannot modify a {invoice.status} invoice'})
    if 'status' in fields and fields['status'] not in ('draft', 'pending', 'cancelled'):
        raise ValidationError({'status': 'status can only be set to draft, pending or cancelled'})
    for key in ('due_date', 'payment_method', 'visit_type', 'doctor_id', 'status'):
        if key in fields:
            setattr(invoice, key, fields[key])
    if 'notes' in fields:
        invoice.notes = bleach.clean(fields['notes'] or '', tags=set(), strip=True)
    recalc = any(k in fields for k in ('items', 'discount_percentage', 'tax_percentage'))
    if recalc:
        discount = fields.get('discount_percentage', invoice.discount_percentage)
        tax = fields.get('tax_percentage', invoice.tax_percentage)
        _validate_percentages(discount, tax)
        invoice.discount_percentage, invoice.tax_percentage = _dec(discount), _dec(tax)
        if 'items' in fields:
            items = fields['items']
            _validate_items(items)
        else:
            items = [{'quantity': i.quantity, 'unit_price': i.unit_price} for i in invoice.items.all()]
        _apply_totals(invoice, items)
        if 'items' in fields:
            _write_items(invoice, items)
    else:
        _settle_status(invoice)
    invoice.save()
    log_action(user=actor, action='invoice_update', object_type='invoice', object_id=invoice.id,
               detail={'fields': sorted(fields), 'total': str(invoice.total_amount)})
    broadcast_refresh(['invoices'])
    return invoice


def delete_invoice(actor, invoice: Invoice) -> None:
    if invoice.paid_amount > 0:
        raise ValidationError('invoices with payments cannot be deleted; cancel instead')
    pk, number = invoice.id, invoice.invoice_number
    invoice.delete()
    log_action(user=actor, action='invoice_delete', object_type='invoice', object_id=pk,
               detail={'invoiceNumber': number})
    broadcast_refresh(['invoices'])


def record_payment(actor, invoice: Invoice, *, amount, payment_method: str,
                   transaction_id: str = '', notes: str = '') -> Payment:
    """Record a payment against ``invoice`` and update paid/balance/status."""
    amount = money(_dec(amount))
    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().select_related('patient__user').get(id=invoice.id)
        if invoice.status in ('paid', 'cancelled', 'draft'):
            raise ValidationError({'status': f'cannot record a payment on a {invoice.status} invoice'})
        if amount <= 0:
            raise ValidationError({'amount': 'payment amount must be positive'})
        if amount > invoice.balance_amount:
            raise ValidationError({'amount': f'payment exceeds the outstanding balance of {invoice.balance_amount}'})
        payment = Payment.objects.create(
            invoice=invoice,
            amount=amount,
            payment_method=payment_method,
            transaction_id=transaction_id,
            notes=bleach.clean(notes or '', tags=set(), strip=True),
            received_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
        invoice.paid_amount = money(invoice.paid_amount + amount)
        invoice.payment_method = payment_method
        _settle_status(invoice)
        invoice.save()
    log_action(user=actor, action='invoice_payment', object_type='invoice', object_id=invoice.id,
               detail={'paymentId': payment.payment_id, 'amount': str(amount), 'status': invoice.status})
    notify(invoice.patient.user, 'invoice_payment',
           {'amount': format_currency(amount), 'invoiceNumber': invoice.invoice_number}, sender=actor)
    broadcast_refresh(['invoices', 'kpis'])
    return payment


def mark_as_paid(actor, invoice: Invoice, *, payment_method: str = 'cash', transaction_id: str = '') -> Invoice:
    """Settle the whole outstanding balance in one payment."""
    if invoice.status == 'paid':
        return invoice
    if invoice.status in OPEN_STATUSES and invoice.balance_amount <= 0:
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(id=invoice.id)
            _settle_status(invoice)
            invoice.save()
        log_action(user=actor, action='invoice_paid', object_type='invoice', object_id=invoice.id,
                   detail={'amount': '0.00'})
        broadcast_refresh(['invoices'])
        return get_invoice(invoice.id)
    record_payment(actor, invoice, amount=invoice.balance_amount, payment_method=payment_method,
                   transaction_id=transaction_id, notes='Marked as paid')
    return get_invoice(invoice.id)


def is_invoice_overdue(invoice: Invoice, today: Optional[date] = None) -> bool:
    if invoice.status in ('paid', 'cancelled', 'draft') or not invoice.due_date:
        return False
    today = today or timezone.localdate()
    return today > invoice.due_date


def calculate_days_overdue(due_date: date, today: Optional[date] = None) -> int:
    today = today or timezone.localdate()
    return (today - due_date).days


def refresh_overdue_statuses(today: Optional[date] = None) -> int:
    today = today or timezone.localdate()
    updated = Invoice.objects.filter(status='pending', due_date__lt=today, balance_amount__gt=0).update(status='overdue')
    if updated:
        logger.info('marked %d invoices overdue', updated)
    return updated


def filter_invoices(*, search: Optional[str] = None, status: Optional[str] = None,
                    payment_method: Optional[str] = None, visit_type: Optional[str] = None,
                    doctor_id: Optional[int] = None, patient_id: Optional[int] = None,
                    date_from: Optional[date] = None, date_to: Optional[date] = None,
                    min_amount=None, max_amount=None):
    qs = Invoice.objects.select_related('patient', 'doctor')
    if search:
        qs = qs.filter(
            Q(invoice_number__icontains=search) | Q(patient__first_name__icontains=search)
            | Q(patient__last_name__icontains=search) | Q(patient__patient_id__icontains=search)
        )
    if status:
        qs = qs.filter(status=status)
    if payment_method:
        qs = qs.filter(payment_method=payment_method)
    if visit_type:
        qs = qs.filter(visit_type=visit_type)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if date_from:
        qs = qs.filter(invoice_date__gte=date_from)
    if date_to:
        qs = qs.filter(invoice_date__lte=date_to)
    if min_amount is not None:
        qs = qs.filter(total_amount__gte=_dec(min_amount))
    if max_amount is not None:
        qs = qs.filter(total_amount__lte=_dec(max_amount))
    return qs


def billing_summary(qs=None, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = qs if qs is not None else Invoice.objects.all()
    paid = Q(status='paid')
    agg = qs.aggregate(
        total=Count('id'),
        paid_count=Count('id', filter=paid),
        pending_count=Count('id', filter=Q(status__in=['pending', 'partially_paid'])),
        overdue_count=Count('id', filter=Q(status='overdue')),
        revenue=Sum('total_amount', filter=paid),
        outstanding=Sum('balance_amount', filter=Q(status__in=OPEN_STATUSES)),
        today_revenue=Sum('total_amount', filter=paid & Q(invoice_date=today)),
        monthly_revenue=Sum('total_amount',
                            filter=paid & Q(invoice_date__year=today.year, invoice_date__month=today.month)),
        average=Avg('total_amount', filter=paid),
    )
    methods = {row['payment_method']: row['n']
               for row in Payment.objects.filter(invoice__in=qs).values('payment_method')
               .order_by().annotate(n=Count('id'))}
    return {
        'totalInvoices': agg['total'],
        'paidInvoices': agg['paid_count'],
        'pendingInvoices': agg['pending_count'],
        'overdueInvoices': agg['overdue_count'],
        'totalRevenue': as_float(money(agg['revenue'] or 0)),
        'outstandingAmount': as_float(money(agg['outstanding'] or 0)),
        'todayRevenue': as_float(money(agg['today_revenue'] or 0)),
        'monthlyRevenue': as_float(money(agg['monthly_revenue'] or 0)),
        'averageInvoiceAmount': as_float(money(agg['average'] or 0)),
        'paymentMethods': methods,
    }


def format_item(item: InvoiceItem) -> dict:
    return {
        'id': item.id,
        'description': item.description,
        'category': item.category,
        'quantity': as_float(item.quantity),
        'unitPrice': as_float(item.unit_price),
        'total': as_float(item.total),
    }


def format_payment(p: Payment) -> dict:
    return {
        'id': p.id,
        'paymentId': p.payment_id,
        'invoiceId': p.invoice_id,
        'amount': as_float(p.amount),
        'paymentMethod': p.payment_method,
        'transactionId': p.transaction_id,
        'status': p.status,
        'notes': p.notes,
        'receivedBy': p.received_by_id,
        'paymentDate': p.payment_date.isoformat(),
    }


def format_invoice(invoice: Invoice, *, detail: bool = False) -> dict:
    data = {
        'id': invoice.id,
        'invoiceNumber': invoice.invoice_number,
        'patientId': invoice.patient_id,
        'patientName': invoice.patient.full_name,
        'doctorId': invoice.doctor_id,
        'doctorName': invoice.doctor.display_name if invoice.doctor else None,
        'visitId': invoice.visit_id,
        'visitType': invoice.visit_type,
        'invoiceDate': format_date(invoice.invoice_date),
        'dueDate': format_date(invoice.due_date),
        'discountPercentage': as_float(invoice.discount_percentage),
        'taxPercentage': as_float(invoice.tax_percentage),
        'subtotal': as_float(invoice.subtotal),
        'discountAmount': as_float(invoice.discount_amount),
        'taxAmount': as_float(invoice.tax_amount),
        'totalAmount': as_float(invoice.total_amount),
        'paidAmount': as_float(invoice.paid_amount),
        'balanceAmount': as_float(invoice.balance_amount),
        'totalDisplay': format_currency(invoice.total_amount),
        'status': invoice.status,
        'paymentMethod': invoice.payment_method,
        'isOverdue': is_invoice_overdue(invoice),
        'daysOverdue': max(calculate_days_overdue(invoice.due_date), 0) if is_invoice_overdue(invoice) else 0,
        'notes': invoice.notes,
        'createdAt': invoice.created_at.isoformat() if invoice.created_at else None,
    }
    if detail:
        data['items'] = [format_item(i) for i in invoice.items.all()]
        data['payments'] = [format_payment(p) for p in invoice.payments.all()]
    return data
