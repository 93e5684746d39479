import csv
import io
import logging
import re
import secrets
from datetime import date
from typing import Optional

import bleach
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.models import Patient
from clinic.permissions import STAFF_ROLES
from clinic.services.audit import log_action
from clinic.services.formatting import format_date, format_phone_number

User = get_user_model()
logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^[6-9]\d{9}$')
TEXT_FIELDS = ('first_name', 'last_name', 'address', 'medical_history',
               'emergency_contact_name', 'blood_group')
UPDATABLE_FIELDS = TEXT_FIELDS + ('date_of_birth', 'gender', 'phone', 'email',
                                  'emergency_contact_phone', 'allergies', 'status')


def validate_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ''))


def validate_phone_number(phone: str) -> bool:
    """Ten digit mobile number starting with 6, 7, 8 or 9."""
    return bool(PHONE_RE.match(phone or ''))


def calculate_age(birth_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if not birth_date:
        return None
    today = today or timezone.localdate()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def _years_ago(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return today.replace(year=today.year - years, day=28)


def format_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'userId': p.user_id,
        'firstName': p.first_name,
        'lastName': p.last_name,
        'name': p.full_name,
        'dateOfBirth': format_date(p.date_of_birth),
        'age': calculate_age(p.date_of_birth),
        'gender': p.gender,
        'phone': p.phone,
        'phoneDisplay': format_phone_number(p.phone) if p.phone else '',
        'email': p.email,
        'address': p.address,
        'bloodGroup': p.blood_group,
        'emergencyContact': {
            'name': p.emergency_contact_name,
            'phone': p.emergency_contact_phone,
        },
        'allergies': p.allergies,
        'medicalHistory': p.medical_history,
        'status': p.status,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def _clean(fields: dict) -> dict:
    out = {}
    for key, value in fields.items():
        if key in TEXT_FIELDS and isinstance(value, str):
            value = bleach.clean(value.strip(), tags=set(), strip=True)
        out[key] = value
    return out


def _validate_contact(fields: dict) -> None:
    errors = {}
    if fields.get('email') and not validate_email(fields['email']):
        errors['email'] = 'Please enter a valid email address'
    if fields.get('phone') and not validate_phone_number(fields['phone']):
        errors['phone'] = 'Phone number must be 10 digits and start with 6-9'
    if fields.get('date_of_birth') and fields['date_of_birth'] > timezone.localdate():
        errors['dateOfBirth'] = 'Date of birth cannot be in the future'
    if errors:
        raise ValidationError(errors)


def get_patient(pk: int) -> Patient:
    p = Patient.objects.select_related('user').filter(id=pk).first()
    if not p:
        raise NotFound('patient not found')
    return p


def get_patient_for_user(user) -> Optional[Patient]:
    if not user or not getattr(user, 'is_authenticated', False):
        return None
    return Patient.objects.filter(user=user).first()


def ensure_can_view_patient(user, patient: Patient) -> None:
    if getattr(user, 'role', '') in STAFF_ROLES:
        return
    if patient.user_id and patient.user_id == user.id:
        return
    raise PermissionDenied('forbidden for this patient')


def filter_patients(*, search: Optional[str] = None, gender: Optional[str] = None,
                    blood_group: Optional[str] = None, status: Optional[str] = None,
                    min_age: Optional[int] = None, max_age: Optional[int] = None):
    qs = Patient.objects.all()
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(patient_id__icontains=search) | Q(phone__icontains=search) | Q(email__icontains=search)
        )
    if gender:
        qs = qs.filter(gender=gender)
    if blood_group:
        qs = qs.filter(blood_group=blood_group)
    if status:
        qs = qs.filter(status=status)
    today = timezone.localdate()
    if min_age is not None:
        qs = qs.filter(date_of_birth__lte=_years_ago(today, min_age))
    if max_age is not None:
        qs = qs.filter(date_of_birth__gt=_years_ago(today, max_age + 1))
    return qs.order_by('-created_at')


def create_patient(actor, **fields) -> Patient:
    fields = _clean(fields)
    _validate_contact(fields)
    patient = Patient.objects.create(created_by=actor if getattr(actor, 'is_authenticated', False) else None,
                                     **fields)
    log_action(user=actor, action='patient_create', object_type='patient', object_id=patient.id,
               detail={'patientId': patient.patient_id})
    return patient


def update_patient(actor, patient: Patient, fields: dict) -> Patient:
    fields = _clean({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
    _validate_contact(fields)
    for key, value in fields.items():
        setattr(patient, key, value)
    patient.save()
    log_action(user=actor, action='patient_update', object_type='patient', object_id=patient.id,
               detail={'fields': sorted(fields)})
    return patient


def delete_patient(actor, patient: Patient, *, hard: bool = False) -> None:
    """Mark a patient inactive, or remove the record entirely when ``hard``."""
    if hard:
        pid = patient.id
        patient.delete()
        log_action(user=actor, action='patient_delete', object_type='patient', object_id=pid,
                   detail={'hard': True})
        return
    patient.status = 'inactive'
    patient.save(update_fields=['status', 'updated_at'])
    log_action(user=actor, action='patient_delete', object_type='patient', object_id=patient.id,
               detail={'hard': False})


def patient_summary(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = Patient.objects.all()
    counts = qs.aggregate(
        total=Count('id'),
        active=Count('id', filter=Q(status='active')),
        new_this_month=Count('id', filter=Q(created_at__year=today.year, created_at__month=today.month)),
    )
    genders = {row['gender'] or 'unknown': row['n'] for row in qs.values('gender').order_by().annotate(n=Count('id'))}
    return {
        'totalPatients': counts['total'],
        'activePatients': counts['active'],
        'newThisMonth': counts['new_this_month'],
        'genderDistribution': genders,
    }


EXPORT_HEADERS = ['Patient ID', 'First Name', 'Last Name', 'Gender', 'Age', 'Phone', 'Email',
                  'Blood Group', 'Status', 'Registered']


def export_patients_csv(patients) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_HEADERS)
    for p in patients:
        writer.writerow([
            p.patient_id, p.first_name, p.last_name, p.gender, calculate_age(p.date_of_birth) or '',
            p.phone, p.email, p.blood_group, p.status,
            timezone.localtime(p.created_at).strftime('%Y-%m-%d') if p.created_at else '',
        ])
    return buf.getvalue()


@transaction.atomic
def register_patient_account(*, username: str, password: Optional[str], email: str = '',
                             first_name: str, last_name: str = '', phone: str = '',
                             date_of_birth: Optional[date] = None, gender: str = '', actor=None):
    """Create a patient-role login together with its patient record.

    Returns ``(user, patient, initial_password)``; the password is generated
    when none is supplied.
    """
    if User.objects.filter(username=username).exists():
        raise ValidationError({'username': 'username already taken'})
    if password:
        try:
            validate_password(password)
        except DjangoValidationError as e:
            raise ValidationError({'password': e.messages})
    else:
        password = secrets.token_urlsafe(12)
    _validate_contact({'email': email, 'phone': phone, 'date_of_birth': date_of_birth})
    user = User.objects.create_user(
        username=username, password=password, email=email,
        first_name=first_name, last_name=last_name, role='patient', phone=phone,
    )
    patient = Patient.objects.create(
        user=user, first_name=first_name, last_name=last_name, email=email, phone=phone,
        date_of_birth=date_of_birth, gender=gender,
        created_by=actor if getattr(actor, 'is_authenticated', False) else user,
    )
    log_action(user=actor or user, action='patient_register', object_type='patient', object_id=patient.id,
               detail={'username': username})
    return user, patient, password
