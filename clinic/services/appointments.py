"""
Appointment booking and lifecycle.

Booking and rescheduling take a row lock on the doctor's StaffMember
record inside ``transaction.atomic()`` so two requests for the same
doctor are serialized; the conflict check and the insert see the same
state.  The partial unique constraint on (doctor, date, start_time)
catches anything that slips past on databases without row locks.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

import bleach
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.exceptions import SlotUnavailable
from clinic.models import Appointment, Patient, StaffMember
from clinic.realtime.events import broadcast_refresh
from clinic.services.audit import log_action
from clinic.services.formatting import as_float, format_date, format_time, format_time_range
from clinic.services.notifications import notify
from clinic.services.scheduling import (
    booked_appointments,
    calculate_end_time,
    format_hhmm,
    is_time_slot_available,
    is_within_working_hours,
    parse_time,
    slot_minutes,
    to_minutes,
)

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW)


def _can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    transitions = {
        Appointment.STATUS_SCHEDULED: [Appointment.STATUS_CONFIRMED, Appointment.STATUS_IN_PROGRESS,
                                       Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW],
        Appointment.STATUS_CONFIRMED: [Appointment.STATUS_IN_PROGRESS, Appointment.STATUS_CANCELLED,
                                       Appointment.STATUS_NO_SHOW],
        Appointment.STATUS_IN_PROGRESS: [Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED],
        Appointment.STATUS_COMPLETED: [],
        Appointment.STATUS_CANCELLED: [],
        Appointment.STATUS_NO_SHOW: [],
    }
    return new in transitions.get(current, [])


def format_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'appointmentId': a.appointment_id,
        'patientId': a.patient_id,
        'patientName': a.patient.full_name,
        'doctorId': a.doctor_id,
        'doctorName': a.doctor.display_name,
        'specialization': a.doctor.specialization,
        'date': format_date(a.date),
        'startTime': format_hhmm(a.start_time),
        'endTime': format_hhmm(a.end_time),
        'timeDisplay': format_time_range(a.start_time, a.end_time),
        'duration': a.duration,
        'status': a.status,
        'reason': a.reason,
        'notes': a.notes,
        'cancellationReason': a.cancellation_reason,
        'consultationFee': as_float(a.consultation_fee),
        'followUpRequired': a.follow_up_required,
        'createdBy': a.created_by_id,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }


def _base_qs():
    return Appointment.objects.select_related('patient', 'doctor')


def get_appointment(pk: int) -> Appointment:
    a = _base_qs().filter(id=pk).first()
    if not a:
        raise NotFound('appointment not found')
    return a


def ensure_can_view_appointment(user, a: Appointment) -> None:
    role = getattr(user, 'role', '')
    if role in ('admin', 'nurse', 'receptionist'):
        return
    if role == 'doctor' and a.doctor.user_id == user.id:
        return
    if role == 'patient' and a.patient.user_id == user.id:
        return
    raise PermissionDenied('forbidden for this appointment')


def _appointment_start(a: Appointment) -> datetime:
    naive = datetime.combine(a.date, a.start_time)
    return timezone.make_aware(naive, timezone.get_current_timezone())


def is_within_cancellation_window(a: Appointment, now: Optional[datetime] = None) -> bool:
    """True while the appointment is at least the cancellation notice period away."""
    now = now or timezone.now()
    hours = settings.CLINIC_CANCELLATION_HOURS
    return _appointment_start(a) - now >= timedelta(hours=hours)


def _lock_doctor(doctor_id: int) -> StaffMember:
    doctor = StaffMember.objects.select_for_update().filter(id=doctor_id).first()
    if not doctor:
        raise NotFound('doctor not found')
    if doctor.role != 'doctor':
        raise ValidationError({'doctorId': 'selected staff member is not a doctor'})
    if doctor.status != 'active':
        raise ValidationError({'doctorId': 'doctor is not available for booking'})
    return doctor


def _validate_slot(doctor: StaffMember, on_date: date, start, duration: int,
                   exclude_id: Optional[int] = None) -> tuple:
    today = timezone.localdate()
    if on_date < today:
        raise ValidationError({'date': 'cannot book an appointment in the past'})
    if on_date > today + timedelta(days=settings.CLINIC_MAX_ADVANCE_BOOKING_DAYS):
        raise ValidationError(
            {'date': f'appointments can be booked at most {settings.CLINIC_MAX_ADVANCE_BOOKING_DAYS} days ahead'}
        )
    if duration <= 0:
        raise ValidationError({'duration': 'duration must be positive'})
    start = parse_time(start)
    if to_minutes(start) + duration > 24 * 60:
        raise ValidationError({'startTime': 'appointment must end on the same day'})
    if on_date == today and start < timezone.localtime().time().replace(second=0, microsecond=0):
        raise ValidationError({'startTime': 'cannot book a time that has already passed'})
    if not is_within_working_hours(doctor, on_date, start):
        raise ValidationError({'startTime': 'doctor is not working at this time'})
    booked = [(a.start_time, a.end_time) for a in booked_appointments(doctor, on_date, exclude_id=exclude_id)]
    if not is_time_slot_available(start, booked, duration):
        raise SlotUnavailable()
    return start, parse_time(calculate_end_time(start, duration))


def _notify_parties(a: Appointment, type_: str, sender=None, priority: str = 'medium') -> None:
    data = {
        'appointmentId': a.appointment_id,
        'doctorName': a.doctor.display_name,
        'patientName': a.patient.full_name,
        'date': format_date(a.date),
        'time': format_time(a.start_time),
    }
    for user in (a.patient.user, a.doctor.user):
        if user is not None and user != sender:
            notify(user, type_, data, sender=sender, priority=priority)


def book_appointment(actor, *, patient_id: int, doctor_id: int, date: date, start_time,
                     duration: Optional[int] = None, reason: str = '', notes: str = '') -> Appointment:
    """Book a slot for ``patient_id`` with ``doctor_id``.

    Raises ``SlotUnavailable`` when the slot overlaps another
    non-cancelled appointment of the same doctor.
    """
    if duration is None:
        duration = slot_minutes()
    patient = Patient.objects.select_related('user').filter(id=patient_id).first()
    if not patient:
        raise NotFound('patient not found')
    if getattr(actor, 'role', '') == 'patient' and patient.user_id != actor.id:
        raise PermissionDenied('patients can only book their own appointments')
    try:
        with transaction.atomic():
            doctor = _lock_doctor(doctor_id)
            start, end = _validate_slot(doctor, date, start_time, duration)
            appointment = Appointment.objects.create(
                patient=patient,
                doctor=doctor,
                date=date,
                start_time=start,
                end_time=end,
                duration=duration,
                reason=bleach.clean(reason or '', tags=set(), strip=True),
                notes=bleach.clean(notes or '', tags=set(), strip=True),
                consultation_fee=doctor.consultation_fee,
                created_by=actor if getattr(actor, 'is_authenticated', False) else None,
            )
    except IntegrityError:
        logger.warning('slot collision for doctor %s on %s at %s', doctor_id, date, start_time)
        raise SlotUnavailable()
    log_action(user=actor, action='appointment_book', object_type='appointment', object_id=appointment.id,
               detail={'appointmentId': appointment.appointment_id, 'doctorId': doctor_id,
                       'date': str(date), 'startTime': format_hhmm(start)})
    _notify_parties(appointment, 'appointment_booked', sender=actor)
    broadcast_refresh(['appointments', f'availability:{doctor_id}:{date}'])
    return appointment


UPDATABLE_FIELDS = ('reason', 'notes', 'follow_up_required')


def update_appointment(actor, a: Appointment, fields: dict) -> Appointment:
    """Edit an appointment; a new doctor, date, start time or duration re-runs the conflict check."""
    if a.status in TERMINAL_STATUSES:
        raise ValidationError({'status': f'cannot modify a {a.status} appointment'})
    reschedule = any(k in fields for k in ('doctor_id', 'date', 'start_time', 'duration'))
    try:
        with transaction.atomic():
            if reschedule:
                doctor = _lock_doctor(fields.get('doctor_id') or a.doctor_id)
                on_date = fields.get('date') or a.date
                duration = fields['duration'] if fields.get('duration') is not None else a.duration
                start, end = _validate_slot(doctor, on_date, fields.get('start_time') or a.start_time,
                                            duration, exclude_id=a.id)
                a.doctor, a.date, a.start_time, a.end_time, a.duration = doctor, on_date, start, end, duration
                a.consultation_fee = doctor.consultation_fee
            for key in UPDATABLE_FIELDS:
                if key in fields:
                    value = fields[key]
                    setattr(a, key, bleach.clean(value, tags=set(), strip=True) if isinstance(value, str) else value)
            a.save()
    except IntegrityError:
        raise SlotUnavailable()
    log_action(user=actor, action='appointment_update', object_type='appointment', object_id=a.id,
               detail={'fields': sorted(fields), 'rescheduled': reschedule})
    broadcast_refresh(['appointments'])
    return a


def change_status(actor, a: Appointment, new_status: str, *, notes: Optional[str] = None) -> Appointment:
    if new_status == a.status:
        return a
    if not _can_transition(a.status, new_status):
        raise ValidationError({'status': f'cannot change status from {a.status} to {new_status}'})
    a.status = new_status
    update = ['status', 'updated_at']
    if notes:
        a.notes = bleach.clean(notes, tags=set(), strip=True)
        update.append('notes')
    a.save(update_fields=update)
    log_action(user=actor, action='appointment_status', object_type='appointment', object_id=a.id,
               detail={'status': new_status})
    broadcast_refresh(['appointments'])
    return a


def cancel_appointment(actor, a: Appointment, reason: str = '') -> Appointment:
    if getattr(actor, 'role', '') == 'patient':
        if a.patient.user_id != actor.id:
            raise PermissionDenied('patients can only cancel their own appointments')
        if not is_within_cancellation_window(a):
            raise ValidationError(
                {'date': f'appointments can only be cancelled {settings.CLINIC_CANCELLATION_HOURS} hours in advance'}
            )
    if not _can_transition(a.status, Appointment.STATUS_CANCELLED):
        raise ValidationError({'status': f'cannot cancel a {a.status} appointment'})
    reason = bleach.clean(reason or '', tags=set(), strip=True)
    a.status = Appointment.STATUS_CANCELLED
    a.cancellation_reason = reason
    a.notes = f'Cancelled: {reason}' if reason else 'Cancelled'
    a.save(update_fields=['status', 'cancellation_reason', 'notes', 'updated_at'])
    log_action(user=actor, action='appointment_cancel', object_type='appointment', object_id=a.id,
               detail={'reason': reason})
    _notify_parties(a, 'appointment_cancelled', sender=actor, priority='high')
    broadcast_refresh(['appointments', f'availability:{a.doctor_id}:{a.date}'])
    return a


def complete_appointment(actor, a: Appointment, notes: str = '', *, follow_up_required: bool = False) -> Appointment:
    if a.status in (Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED):
        # consultations can be closed without an explicit start
        change_status(actor, a, Appointment.STATUS_IN_PROGRESS)
    if a.follow_up_required != follow_up_required:
        a.follow_up_required = follow_up_required
        a.save(update_fields=['follow_up_required', 'updated_at'])
    return change_status(actor, a, Appointment.STATUS_COMPLETED, notes=notes or None)


def delete_appointment(actor, a: Appointment) -> None:
    pk, code = a.id, a.appointment_id
    a.delete()
    log_action(user=actor, action='appointment_delete', object_type='appointment', object_id=pk,
               detail={'appointmentId': code})
    broadcast_refresh(['appointments'])


def filter_appointments(*, search: Optional[str] = None, doctor_id: Optional[int] = None,
                        patient_id: Optional[int] = None, status: Optional[str] = None,
                        specialization: Optional[str] = None, date_from: Optional[date] = None,
                        date_to: Optional[date] = None):
    qs = _base_qs()
    if search:
        qs = qs.filter(
            Q(patient__first_name__icontains=search) | Q(patient__last_name__icontains=search)
            | Q(doctor__first_name__icontains=search) | Q(doctor__last_name__icontains=search)
            | Q(appointment_id__icontains=search)
        )
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    if specialization:
        qs = qs.filter(doctor__specialization__icontains=specialization)
    if date_from:
        qs = qs.filter(date__gte=date_from)
    if date_to:
        qs = qs.filter(date__lte=date_to)
    return qs


def scope_for_user(qs, user):
    """Restrict an appointment queryset to what ``user`` may see."""
    role = getattr(user, 'role', '')
    if role == 'doctor':
        return qs.filter(doctor__user=user)
    if role == 'patient':
        return qs.filter(patient__user=user)
    if role in ('admin', 'nurse', 'receptionist'):
        return qs
    return qs.none()


def by_patient(patient_id: int, limit: Optional[int] = None) -> list[Appointment]:
    qs = _base_qs().filter(patient_id=patient_id).order_by('-date', '-start_time')
    return list(qs[:limit] if limit else qs)


def by_doctor(doctor_id: int, on_date: Optional[date] = None) -> list[Appointment]:
    qs = _base_qs().filter(doctor_id=doctor_id)
    if on_date:
        qs = qs.filter(date=on_date)
    return list(qs.order_by('date', 'start_time'))


def appointment_summary(qs=None, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = qs if qs is not None else Appointment.objects.all()
    counts = qs.aggregate(
        total=Count('id'),
        today=Count('id', filter=Q(date=today)),
        scheduled=Count('id', filter=Q(status__in=[Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED])),
        completed=Count('id', filter=Q(status=Appointment.STATUS_COMPLETED)),
        cancelled=Count('id', filter=Q(status=Appointment.STATUS_CANCELLED)),
        no_show=Count('id', filter=Q(status=Appointment.STATUS_NO_SHOW)),
        upcoming=Count('id', filter=Q(date__gt=today) & ~Q(status__in=TERMINAL_STATUSES)),
    )
    return {
        'totalAppointments': counts['total'],
        'todayAppointments': counts['today'],
        'scheduledAppointments': counts['scheduled'],
        'completedAppointments': counts['completed'],
        'cancelledAppointments': counts['cancelled'],
        'noShowAppointments': counts['no_show'],
        'upcomingAppointments': counts['upcoming'],
    }
