import csv
import io
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import bleach
from django.conf import settings
from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.models import Dispense, Medicine, Patient, Restock, Vendor
from clinic.realtime.events import broadcast_refresh
from clinic.services.audit import log_action
from clinic.services.formatting import as_float, format_date, money
from clinic.services.notifications import notify_roles

logger = logging.getLogger(__name__)

STATUSES = ('available', 'low_stock', 'out_of_stock', 'expired', 'expiring_soon')
ALERT_ROLES = ('admin', 'nurse')
MEDICINE_FIELDS = ('name', 'generic_name', 'category', 'manufacturer', 'batch_number', 'quantity',
                   'unit_price', 'min_threshold', 'expiry_date', 'vendor_id', 'description')
VENDOR_FIELDS = ('name', 'contact_person', 'phone', 'email', 'address', 'is_active')


def _days_until(expiry: date, today: Optional[date] = None) -> int:
    return (expiry - (today or timezone.localdate())).days


def is_expired(expiry: Optional[date], today: Optional[date] = None) -> bool:
    return bool(expiry) and _days_until(expiry, today) < 0


def is_expiring_soon(expiry: Optional[date], days: Optional[int] = None, today: Optional[date] = None) -> bool:
    if not expiry:
        return False
    days = settings.CLINIC_EXPIRY_WARNING_DAYS if days is None else days
    return 0 < _days_until(expiry, today) <= days


def calculate_medicine_status(m: Medicine, today: Optional[date] = None) -> str:
    """out_of_stock, then expired, then expiring_soon, then low_stock, else available."""
    if m.quantity == 0:
        return 'out_of_stock'
    if m.expiry_date:
        days = _days_until(m.expiry_date, today)
        if days < 0:
            return 'expired'
        if days <= settings.CLINIC_EXPIRY_WARNING_DAYS:
            return 'expiring_soon'
    if m.quantity <= m.min_threshold:
        return 'low_stock'
    return 'available'


def format_medicine(m: Medicine) -> dict:
    return {
        'id': m.id,
        'medicineId': m.medicine_id,
        'name': m.name,
        'genericName': m.generic_name,
        'category': m.category,
        'manufacturer': m.manufacturer,
        'batchNumber': m.batch_number,
        'quantity': m.quantity,
        'unitPrice': as_float(m.unit_price),
        'totalValue': as_float(m.total_value),
        'minThreshold': m.min_threshold,
        'expiryDate': format_date(m.expiry_date),
        'vendorId': m.vendor_id,
        'vendorName': m.vendor.name if m.vendor else None,
        'description': m.description,
        'status': calculate_medicine_status(m),
        'updatedAt': m.updated_at.isoformat() if m.updated_at else None,
    }


def format_vendor(v: Vendor) -> dict:
    return {
        'id': v.id,
        'vendorId': v.vendor_id,
        'name': v.name,
        'contactPerson': v.contact_person,
        'phone': v.phone,
        'email': v.email,
        'address': v.address,
        'isActive': v.is_active,
    }


def format_dispense(d: Dispense) -> dict:
    return {
        'id': d.id,
        'dispenseId': d.dispense_id,
        'medicineId': d.medicine_id,
        'patientId': d.patient_id,
        'visitId': d.visit_id,
        'quantity': d.quantity,
        'notes': d.notes,
        'dispensedBy': d.dispensed_by_id,
        'createdAt': d.created_at.isoformat(),
    }


def get_medicine(pk: int) -> Medicine:
    m = Medicine.objects.select_related('vendor').filter(id=pk).first()
    if not m:
        raise NotFound('medicine not found')
    return m


def get_vendor(pk: int) -> Vendor:
    v = Vendor.objects.filter(id=pk).first()
    if not v:
        raise NotFound('vendor not found')
    return v


def filter_medicines(*, search: Optional[str] = None, category: Optional[str] = None,
                     status: Optional[str] = None, vendor_id: Optional[int] = None) -> list[Medicine]:
    qs = Medicine.objects.select_related('vendor')
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(generic_name__icontains=search)
                       | Q(medicine_id__icontains=search) | Q(manufacturer__icontains=search))
    if category:
        qs = qs.filter(category=category)
    if vendor_id:
        qs = qs.filter(vendor_id=vendor_id)
    medicines = list(qs)
    if status:
        medicines = [m for m in medicines if calculate_medicine_status(m) == status]
    return medicines


def _clean_medicine(fields: dict) -> dict:
    fields = {k: v for k, v in fields.items() if k in MEDICINE_FIELDS}
    for key in ('name', 'generic_name', 'manufacturer', 'batch_number', 'description'):
        if isinstance(fields.get(key), str):
            fields[key] = bleach.clean(fields[key].strip(), tags=set(), strip=True)
    if 'unit_price' in fields:
        if Decimal(str(fields['unit_price'])) < 0:
            raise ValidationError({'unitPrice': 'unit price cannot be negative'})
        fields['unit_price'] = money(fields['unit_price'])
    if fields.get('vendor_id') and not Vendor.objects.filter(id=fields['vendor_id']).exists():
        raise ValidationError({'vendorId': 'vendor not found'})
    return fields


def create_medicine(actor, **fields) -> Medicine:
    fields = _clean_medicine(fields)
    if not fields.get('name'):
        raise ValidationError({'name': 'name is required'})
    m = Medicine.objects.create(**fields)
    log_action(user=actor, action='medicine_create', object_type='medicine', object_id=m.id,
               detail={'medicineId': m.medicine_id, 'quantity': m.quantity})
    broadcast_refresh(['medicines'])
    return m


def update_medicine(actor, m: Medicine, fields: dict) -> Medicine:
    fields = _clean_medicine(fields)
    if 'expiry_date' in fields and fields['expiry_date'] != m.expiry_date:
        m.expiry_alert_sent = False
    for key, value in fields.items():
        setattr(m, key, value)
    m.save()
    log_action(user=actor, action='medicine_update', object_type='medicine', object_id=m.id,
               detail={'fields': sorted(fields)})
    broadcast_refresh(['medicines'])
    return m


def delete_medicine(actor, m: Medicine) -> None:
    pk, code = m.id, m.medicine_id
    m.delete()
    log_action(user=actor, action='medicine_delete', object_type='medicine', object_id=pk,
               detail={'medicineId': code})
    broadcast_refresh(['medicines'])


def restock_medicine(actor, medicine_id: int, *, quantity: int, vendor_id: Optional[int] = None,
                     unit_price=None, batch_number: str = '', expiry_date: Optional[date] = None) -> Medicine:
    if quantity <= 0:
        raise ValidationError({'quantity': 'restock quantity must be positive'})
    with transaction.atomic():
        m = Medicine.objects.select_for_update().filter(id=medicine_id).first()
        if not m:
            raise NotFound('medicine not found')
        Restock.objects.create(
            medicine=m, vendor_id=vendor_id, quantity=quantity,
            unit_price=money(unit_price) if unit_price is not None else None,
            batch_number=batch_number, expiry_date=expiry_date,
            restocked_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
        m.quantity += quantity
        if unit_price is not None:
            m.unit_price = money(unit_price)
        if batch_number:
            m.batch_number = batch_number
        if expiry_date and expiry_date != m.expiry_date:
            m.expiry_date = expiry_date
            m.expiry_alert_sent = False
        if vendor_id:
            m.vendor_id = vendor_id
        m.save()
    log_action(user=actor, action='medicine_restock', object_type='medicine', object_id=m.id,
               detail={'quantity': quantity, 'newQuantity': m.quantity})
    broadcast_refresh(['medicines'])
    return m


def dispense_medicine(actor, medicine_id: int, *, quantity: int, patient_id: Optional[int] = None,
                      visit_id: Optional[int] = None, notes: str = '') -> Dispense:
    """Take ``quantity`` units out of stock; alerts admins and nurses when stock runs low."""
    if quantity <= 0:
        raise ValidationError({'quantity': 'dispense quantity must be positive'})
    if patient_id and not Patient.objects.filter(id=patient_id).exists():
        raise NotFound('patient not found')
    with transaction.atomic():
        m = Medicine.objects.select_for_update().filter(id=medicine_id).first()
        if not m:
            raise NotFound('medicine not found')
        if is_expired(m.expiry_date):
            raise ValidationError({'medicineId': f'{m.name} has expired and cannot be dispensed'})
        if m.quantity < quantity:
            raise ValidationError({'quantity': f'insufficient stock: only {m.quantity} units of {m.name} left'})
        was_low = m.quantity <= m.min_threshold
        m.quantity -= quantity
        m.save()
        dispense = Dispense.objects.create(
            medicine=m, patient_id=patient_id, visit_id=visit_id, quantity=quantity,
            notes=bleach.clean(notes or '', tags=set(), strip=True),
            dispensed_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
    log_action(user=actor, action='medicine_dispense', object_type='medicine', object_id=m.id,
               detail={'dispenseId': dispense.dispense_id, 'quantity': quantity, 'remaining': m.quantity})
    if m.quantity <= m.min_threshold and not was_low:
        notify_roles(ALERT_ROLES, 'low_stock_alert',
                     {'medicineName': m.name, 'quantity': m.quantity, 'medicineId': m.medicine_id},
                     priority='high' if m.quantity == 0 else 'medium', sender=actor)
    broadcast_refresh(['medicines', 'kpis'])
    return dispense


def notify_expired_medicines(today: Optional[date] = None) -> int:
    """Alert admins and nurses once about each stocked medicine past its expiry date."""
    today = today or timezone.localdate()
    expired = list(Medicine.objects.filter(expiry_date__lt=today, quantity__gt=0, expiry_alert_sent=False))
    for m in expired:
        notify_roles(ALERT_ROLES, 'medicine_expired',
                     {'medicineName': m.name, 'expiryDate': format_date(m.expiry_date), 'medicineId': m.medicine_id},
                     priority='high')
    Medicine.objects.filter(id__in=[m.id for m in expired]).update(expiry_alert_sent=True)
    return len(expired)


def low_stock_queryset():
    return Medicine.objects.filter(quantity__lte=F('min_threshold'))


def inventory_summary(medicines=None) -> dict:
    medicines = list(medicines if medicines is not None else Medicine.objects.all())
    counts = {status: 0 for status in STATUSES}
    categories = {value: 0 for value, _ in Medicine.CATEGORY_CHOICES}
    total_value = Decimal('0')
    for m in medicines:
        counts[calculate_medicine_status(m)] += 1
        categories[m.category] = categories.get(m.category, 0) + 1
        total_value += m.total_value
    return {
        'totalMedicines': len(medicines),
        'totalValue': as_float(money(total_value)),
        'lowStockItems': counts['low_stock'],
        'expiredItems': counts['expired'],
        'expiringSoonItems': counts['expiring_soon'],
        'outOfStockItems': counts['out_of_stock'],
        'availableItems': counts['available'],
        'categoryCounts': categories,
    }


def total_stock_by_category() -> dict:
    rows = Medicine.objects.values('category').order_by().annotate(total=Sum('quantity'))
    return {row['category']: row['total'] or 0 for row in rows}


EXPORT_HEADERS = ['Medicine ID', 'Name', 'Generic Name', 'Category', 'Manufacturer', 'Batch', 'Quantity',
                  'Unit Price', 'Total Value', 'Min Threshold', 'Expiry Date', 'Status']


def export_medicines_csv(medicines) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_HEADERS)
    for m in medicines:
        writer.writerow([
            m.medicine_id, m.name, m.generic_name, m.category, m.manufacturer, m.batch_number, m.quantity,
            f'{m.unit_price:.2f}', f'{m.total_value:.2f}', m.min_threshold,
            format_date(m.expiry_date) or '', calculate_medicine_status(m),
        ])
    return buf.getvalue()


def create_vendor(actor, **fields) -> Vendor:
    fields = {k: v for k, v in fields.items() if k in VENDOR_FIELDS}
    for key in ('name', 'contact_person', 'address'):
        if isinstance(fields.get(key), str):
            fields[key] = bleach.clean(fields[key].strip(), tags=set(), strip=True)
    v = Vendor.objects.create(**fields)
    log_action(user=actor, action='vendor_create', object_type='vendor', object_id=v.id,
               detail={'vendorId': v.vendor_id})
    return v


def update_vendor(actor, v: Vendor, fields: dict) -> Vendor:
    for key, value in fields.items():
        if key in VENDOR_FIELDS:
            setattr(v, key, bleach.clean(value.strip(), tags=set(), strip=True) if isinstance(value, str) else value)
    v.save()
    log_action(user=actor, action='vendor_update', object_type='vendor', object_id=v.id,
               detail={'fields': sorted(fields)})
    return v


def delete_vendor(actor, v: Vendor) -> None:
    """Vendors referenced by medicines are deactivated rather than removed."""
    if v.medicines.exists():
        v.is_active = False
        v.save(update_fields=['is_active'])
        log_action(user=actor, action='vendor_deactivate', object_type='vendor', object_id=v.id)
        return
    pk = v.id
    v.delete()
    log_action(user=actor, action='vendor_delete', object_type='vendor', object_id=pk)
