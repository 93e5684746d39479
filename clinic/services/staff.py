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
from rest_framework.authtoken.models import Token
from rest_framework.exceptions import NotFound, ValidationError

from clinic.models import PasswordResetRequest, StaffMember, StaffSchedule
from clinic.services.audit import log_action
from clinic.services.formatting import as_float, format_date
from clinic.services.notifications import notify_roles
from clinic.services.scheduling import format_hhmm, parse_time, to_minutes, working_windows

User = get_user_model()
logger = logging.getLogger(__name__)

DEPARTMENTS = [
    'Cardiology', 'Dermatology', 'Emergency Medicine', 'Family Medicine', 'Internal Medicine',
    'Neurology', 'Orthopedics', 'Pediatrics', 'Psychiatry', 'Radiology', 'Surgery', 'Urology',
    'Laboratory', 'Administration', 'Reception',
]
SPECIALIZATIONS = [
    'Cardiology', 'Dermatology', 'Emergency Medicine', 'Family Medicine', 'Internal Medicine',
    'Neurology', 'Orthopedics', 'Pediatrics', 'Psychiatry', 'Radiology', 'General Surgery',
    'Cardiac Surgery', 'Neurosurgery', 'Urology', 'Oncology', 'Endocrinology',
    'Gastroenterology', 'Pulmonology',
]
LICENSE_PATTERNS = {
    'doctor': re.compile(r'^[A-Z]{2}\d{6}$'),
    'nurse': re.compile(r'^[A-Z]{2}\d{5}$'),
}
UPDATABLE_FIELDS = (
    'first_name', 'last_name', 'email', 'phone', 'department', 'specialization', 'license_number',
    'qualification', 'experience_years', 'consultation_fee', 'shift', 'wards', 'hire_date', 'status',
)


def validate_license_number(license_number: str, role: str) -> bool:
    if not license_number:
        return False
    pattern = LICENSE_PATTERNS.get(role)
    if pattern:
        return bool(pattern.match(license_number))
    return len(license_number) >= 5


def format_staff_name(first_name: str, last_name: str, role: str) -> str:
    title = 'Dr.' if role == 'doctor' else ''
    return f"{title} {first_name} {last_name}".strip()


def get_day_name(day: int) -> str:
    return StaffSchedule.DAY_NAMES[day % 7]


def format_schedule(row: StaffSchedule) -> dict:
    return {
        'id': row.id,
        'dayOfWeek': row.day_of_week,
        'dayName': get_day_name(row.day_of_week),
        'startTime': format_hhmm(row.start_time),
        'endTime': format_hhmm(row.end_time),
        'isAvailable': row.is_available,
    }


def format_staff(s: StaffMember, *, include_schedule: bool = False) -> dict:
    data = {
        'id': s.id,
        'staffId': s.staff_id,
        'userId': s.user_id,
        'firstName': s.first_name,
        'lastName': s.last_name,
        'name': s.display_name,
        'email': s.email,
        'phone': s.phone,
        'role': s.role,
        'department': s.department,
        'specialization': s.specialization,
        'licenseNumber': s.license_number,
        'qualification': s.qualification,
        'experienceYears': s.experience_years,
        'consultationFee': as_float(s.consultation_fee),
        'shift': s.shift,
        'wards': s.wards,
        'hireDate': format_date(s.hire_date),
        'status': s.status,
    }
    if include_schedule:
        data['schedule'] = [format_schedule(r) for r in s.schedules.all()]
    return data


def get_staff(pk: int) -> StaffMember:
    s = StaffMember.objects.filter(id=pk).first()
    if not s:
        raise NotFound('staff member not found')
    return s


def get_staff_for_user(user) -> Optional[StaffMember]:
    if not user or not getattr(user, 'is_authenticated', False):
        return None
    return StaffMember.objects.filter(user=user).first()


def filter_staff(*, search: Optional[str] = None, role: Optional[str] = None,
                 department: Optional[str] = None, status: Optional[str] = None,
                 specialization: Optional[str] = None):
    qs = StaffMember.objects.all()
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(staff_id__icontains=search) | Q(email__icontains=search)
        )
    if role:
        qs = qs.filter(role=role)
    if department:
        qs = qs.filter(department=department)
    if status:
        qs = qs.filter(status=status)
    if specialization:
        qs = qs.filter(specialization__icontains=specialization)
    return qs


def _validate_staff_fields(fields: dict, role: str) -> dict:
    for key in ('first_name', 'last_name', 'qualification', 'department', 'specialization'):
        if isinstance(fields.get(key), str):
            fields[key] = bleach.clean(fields[key].strip(), tags=set(), strip=True)
    lic = fields.get('license_number')
    if lic and not validate_license_number(lic, role):
        raise ValidationError({'licenseNumber': f'invalid license number format for {role}'})
    return fields


def create_staff_member(actor, *, role: str, **fields) -> StaffMember:
    fields = _validate_staff_fields(fields, role)
    staff = StaffMember.objects.create(role=role, **fields)
    log_action(user=actor, action='staff_create', object_type='staff', object_id=staff.id,
               detail={'staffId': staff.staff_id, 'role': role})
    return staff


def update_staff_member(actor, staff: StaffMember, fields: dict) -> StaffMember:
    fields = _validate_staff_fields({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}, staff.role)
    for key, value in fields.items():
        setattr(staff, key, value)
    staff.save()
    if staff.user_id and ('status' in fields):
        staff.user.is_active = staff.status != 'inactive'
        staff.user.save(update_fields=['is_active'])
    log_action(user=actor, action='staff_update', object_type='staff', object_id=staff.id,
               detail={'fields': sorted(fields)})
    return staff


def delete_staff_member(actor, staff: StaffMember, *, hard: bool = False) -> None:
    if hard:
        sid = staff.id
        if staff.appointments.exists():
            raise ValidationError('staff member has appointments; deactivate instead')
        staff.delete()
        log_action(user=actor, action='staff_delete', object_type='staff', object_id=sid, detail={'hard': True})
        return
    update_staff_member(actor, staff, {'status': 'inactive'})


def staff_summary() -> dict:
    qs = StaffMember.objects.all()
    counts = qs.aggregate(
        total=Count('id'),
        active=Count('id', filter=Q(status='active')),
        on_leave=Count('id', filter=Q(status='on_leave')),
        inactive=Count('id', filter=Q(status='inactive')),
    )
    by_role = {row['role']: row['n'] for row in qs.values('role').order_by().annotate(n=Count('id'))}
    by_department = {row['department'] or 'Unassigned': row['n']
                     for row in qs.values('department').order_by().annotate(n=Count('id'))}
    return {
        'totalStaff': counts['total'],
        'activeStaff': counts['active'],
        'onLeave': counts['on_leave'],
        'inactive': counts['inactive'],
        'byRole': by_role,
        'byDepartment': by_department,
    }


@transaction.atomic
def replace_schedule(actor, staff: StaffMember, entries: list[dict]) -> list[StaffSchedule]:
    """Replace the staff member's weekly schedule with ``entries``."""
    rows = []
    for idx, entry in enumerate(entries):
        start, end = parse_time(entry['start_time']), parse_time(entry['end_time'])
        if to_minutes(start) >= to_minutes(end):
            raise ValidationError({f'schedule[{idx}]': 'start time must be before end time'})
        day = int(entry['day_of_week'])
        if not 0 <= day <= 6:
            raise ValidationError({f'schedule[{idx}]': 'dayOfWeek must be between 0 (Sunday) and 6'})
        rows.append(StaffSchedule(staff=staff, day_of_week=day, start_time=start, end_time=end,
                                  is_available=entry.get('is_available', True)))
    StaffSchedule.objects.filter(staff=staff).delete()
    StaffSchedule.objects.bulk_create(rows)
    log_action(user=actor, action='schedule_update', object_type='staff', object_id=staff.id,
               detail={'entries': len(rows)})
    return list(staff.schedules.all())


def find_doctors(*, specialization: Optional[str] = None, on_date: Optional[date] = None,
                 department: Optional[str] = None) -> list[StaffMember]:
    """Active doctors, optionally limited to a specialization and to those working on ``on_date``."""
    qs = StaffMember.objects.filter(role='doctor', status='active')
    if specialization:
        qs = qs.filter(specialization__icontains=specialization)
    if department:
        qs = qs.filter(department=department)
    doctors = list(qs)
    if on_date:
        doctors = [d for d in doctors if working_windows(d, on_date)]
    return doctors


def _set_password(user, password: Optional[str]) -> str:
    if password:
        try:
            validate_password(password, user=user)
        except DjangoValidationError as e:
            raise ValidationError({'password': e.messages})
    else:
        password = secrets.token_urlsafe(12)
    user.set_password(password)
    return password


@transaction.atomic
def create_staff_account(actor, *, email: str, first_name: str, last_name: str, role: str,
                         password: Optional[str] = None, username: Optional[str] = None,
                         **profile) -> tuple:
    """Create a staff login and its StaffMember record.

    The account must change its password on first login.  Returns
    ``(user, staff, initial_password)``.
    """
    username = username or email
    if User.objects.filter(Q(username=username) | Q(email__iexact=email)).exists():
        raise ValidationError({'email': 'a user with this email or username already exists'})
    user = User(username=username, email=email, first_name=first_name, last_name=last_name,
                role=role, phone=profile.get('phone', ''), must_change_password=True)
    initial_password = _set_password(user, password)
    user.save()
    fields = _validate_staff_fields(dict(profile, first_name=first_name, last_name=last_name, email=email), role)
    staff = StaffMember.objects.create(user=user, role=role, **fields)
    log_action(user=actor, action='staff_account_create', object_type='user', object_id=user.id,
               detail={'staffId': staff.staff_id, 'role': role})
    logger.info('staff account %s created for role %s', username, role)
    return user, staff, initial_password


def reset_staff_password(actor, *, user_id: Optional[int] = None, email: Optional[str] = None,
                         new_password: Optional[str] = None) -> tuple:
    qs = User.objects.exclude(role='patient')
    user = qs.filter(id=user_id).first() if user_id else qs.filter(email__iexact=email or '').first()
    if not user:
        raise NotFound('staff user not found')
    password = _set_password(user, new_password)
    user.must_change_password = True
    user.save(update_fields=['password', 'must_change_password'])
    Token.objects.filter(user=user).delete()
    PasswordResetRequest.objects.filter(email__iexact=user.email, status='pending').update(
        status='resolved', resolved_by=actor, resolved_at=timezone.now()
    )
    log_action(user=actor, action='staff_password_reset', object_type='user', object_id=user.id)
    return user, password


def create_password_reset_request(*, email: str, role: str = '', message: str = '') -> PasswordResetRequest:
    req = PasswordResetRequest.objects.create(
        email=email, role=role, message=bleach.clean(message or '', tags=set(), strip=True)
    )
    log_action(user=None, action='password_reset_request', object_type='password_reset',
               object_id=req.id, detail={'email': email})
    notify_roles(['admin'], 'system_alert', {'message': f'Password reset requested for {email}'},
                 priority='high')
    return req


def resolve_password_reset_request(actor, req: PasswordResetRequest, status: str) -> PasswordResetRequest:
    if status not in ('resolved', 'rejected'):
        raise ValidationError({'status': 'must be resolved or rejected'})
    req.status = status
    req.resolved_by = actor
    req.resolved_at = timezone.now()
    req.save(update_fields=['status', 'resolved_by', 'resolved_at'])
    log_action(user=actor, action='password_reset_resolve', object_type='password_reset',
               object_id=req.id, detail={'status': status})
    return req


def format_reset_request(req: PasswordResetRequest) -> dict:
    return {
        'id': req.id,
        'email': req.email,
        'role': req.role,
        'message': req.message,
        'status': req.status,
        'createdAt': req.created_at.isoformat(),
        'resolvedAt': req.resolved_at.isoformat() if req.resolved_at else None,
    }
