"""
Visits (OPD and IPD), vitals, discharge and beds.

An IPD admission occupies a bed; the bed row is locked and flipped to
``occupied`` in the same transaction that creates the visit, and freed
again on discharge.
"""
from __future__ import annotations

import logging
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import bleach
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.exceptions import Conflict
from clinic.models import Appointment, Bed, DischargeSummary, Patient, StaffMember, Visit, VisitVitals
from clinic.realtime.events import broadcast_refresh
from clinic.services.audit import log_action
from clinic.services.formatting import as_float, format_date

logger = logging.getLogger(__name__)

VITAL_RANGES = {
    'temperature': (90, 110, 'Temperature must be between 90-110°F'),
    'heart_rate': (30, 200, 'Heart rate must be between 30-200 bpm'),
    'respiratory_rate': (8, 40, 'Respiratory rate must be between 8-40 breaths/min'),
    'oxygen_saturation': (70, 100, 'Oxygen saturation must be between 70-100%'),
}
VISIT_TEXT_FIELDS = ('chief_complaint', 'diagnosis', 'notes')
VISIT_UPDATABLE = VISIT_TEXT_FIELDS + ('symptoms', 'prescribed_medicines', 'follow_up_date',
                                       'expected_discharge_date', 'status', 'doctor_id')
BED_FIELDS = ('bed_number', 'room_number', 'ward', 'bed_type', 'status', 'last_cleaned')


class BedUnavailable(Conflict):
    default_detail = 'The selected bed is not available.'
    default_code = 'bed_unavailable'


def occupancy_rate(occupied: int, total: int) -> int:
    if not total:
        return 0
    return round(occupied / total * 100)


def calculate_length_of_stay(admission: datetime, discharge: Optional[datetime] = None) -> int:
    """Whole days between admission and discharge (or now), rounded up."""
    end = discharge or timezone.now()
    return math.ceil(abs((end - admission).total_seconds()) / 86400)


def validate_vitals(vitals: dict) -> dict:
    errors = {}
    for key, (low, high, message) in VITAL_RANGES.items():
        value = vitals.get(key)
        if value is not None and value != '' and not low <= float(value) <= high:
            errors[key] = message
    return errors


def format_vitals(v) -> str:
    """``BP: 120/80, Temp: 98.6°F, HR: 72 bpm, SpO2: 98%``"""
    get = v.get if isinstance(v, dict) else lambda k: getattr(v, k, None)
    parts = []
    if get('blood_pressure'):
        parts.append(f"BP: {get('blood_pressure')}")
    if get('temperature'):
        parts.append(f"Temp: {get('temperature')}°F")
    if get('heart_rate'):
        parts.append(f"HR: {get('heart_rate')} bpm")
    if get('oxygen_saturation'):
        parts.append(f"SpO2: {get('oxygen_saturation')}%")
    return ', '.join(parts)


def format_vitals_row(v: VisitVitals) -> dict:
    return {
        'id': v.id,
        'visitId': v.visit_id,
        'bloodPressure': v.blood_pressure,
        'temperature': as_float(v.temperature) if v.temperature is not None else None,
        'heartRate': v.heart_rate,
        'respiratoryRate': v.respiratory_rate,
        'oxygenSaturation': v.oxygen_saturation,
        'weight': as_float(v.weight) if v.weight is not None else None,
        'summary': format_vitals(v),
        'recordedBy': v.recorded_by_id,
        'recordedAt': v.recorded_at.isoformat(),
    }


def format_discharge_summary(s: DischargeSummary) -> dict:
    return {
        'visitId': s.visit_id,
        'finalDiagnosis': s.final_diagnosis,
        'treatmentGiven': s.treatment_given,
        'medicinesAtDischarge': s.medicines_at_discharge,
        'followUpInstructions': s.follow_up_instructions,
        'finalNotes': s.final_notes,
        'createdAt': s.created_at.isoformat(),
        'text': render_discharge_summary(s),
    }


def format_visit(v: Visit) -> dict:
    data = {
        'id': v.id,
        'visitId': v.visit_id,
        'patientId': v.patient_id,
        'patientName': v.patient.full_name,
        'doctorId': v.doctor_id,
        'doctorName': v.doctor.display_name if v.doctor else None,
        'appointmentId': v.appointment_id,
        'visitType': v.visit_type,
        'visitDate': format_date(v.visit_date),
        'chiefComplaint': v.chief_complaint,
        'symptoms': v.symptoms,
        'diagnosis': v.diagnosis,
        'prescribedMedicines': v.prescribed_medicines,
        'notes': v.notes,
        'status': v.status,
        'followUpDate': format_date(v.follow_up_date),
        'createdAt': v.created_at.isoformat() if v.created_at else None,
    }
    if v.visit_type == 'ipd':
        data.update({
            'bedId': v.bed_id,
            'bedNumber': v.bed.bed_number if v.bed else None,
            'ward': v.bed.ward if v.bed else None,
            'admissionDate': v.admission_date.isoformat() if v.admission_date else None,
            'expectedDischargeDate': format_date(v.expected_discharge_date),
            'actualDischargeDate': v.actual_discharge_date.isoformat() if v.actual_discharge_date else None,
            'lengthOfStay': (calculate_length_of_stay(v.admission_date, v.actual_discharge_date)
                             if v.admission_date else 0),
        })
    return data


def format_bed(b: Bed) -> dict:
    return {
        'id': b.id,
        'bedNumber': b.bed_number,
        'roomNumber': b.room_number,
        'ward': b.ward,
        'bedType': b.bed_type,
        'status': b.status,
        'patientId': b.patient_id,
        'patientName': b.patient.full_name if b.patient else None,
        'assignedDate': b.assigned_date.isoformat() if b.assigned_date else None,
        'lastCleaned': b.last_cleaned.isoformat() if b.last_cleaned else None,
    }


def render_discharge_summary(s: DischargeSummary) -> str:
    visit = s.visit
    admitted = visit.admission_date or visit.created_at
    discharged = visit.actual_discharge_date or timezone.now()
    medicines = ', '.join(str(m) for m in s.medicines_at_discharge or [])
    lines = [
        'DISCHARGE SUMMARY',
        '',
        f'Patient: {visit.patient.full_name}',
        f"Doctor: {visit.doctor.display_name if visit.doctor else '-'}",
        f'Admission Date: {timezone.localtime(admitted):%Y-%m-%d}',
        f'Discharge Date: {timezone.localtime(discharged):%Y-%m-%d}',
        '',
        f'Final Diagnosis: {s.final_diagnosis}',
        '',
        f'Treatment Given: {s.treatment_given}',
        '',
        f'Medicines at Discharge: {medicines}',
        '',
        f'Follow-up Instructions: {s.follow_up_instructions}',
        '',
        f'Final Notes: {s.final_notes}',
    ]
    return '\n'.join(lines)


def _visits_qs():
    return Visit.objects.select_related('patient', 'doctor', 'bed')


def get_visit(pk: int) -> Visit:
    v = _visits_qs().filter(id=pk).first()
    if not v:
        raise NotFound('visit not found')
    return v


def ensure_can_view_visit(user, v: Visit) -> None:
    role = getattr(user, 'role', '')
    if role in ('admin', 'doctor', 'nurse', 'receptionist'):
        return
    if role == 'patient' and v.patient.user_id == user.id:
        return
    raise PermissionDenied('forbidden for this visit')


def filter_visits(*, search: Optional[str] = None, visit_type: Optional[str] = None,
                  status: Optional[str] = None, patient_id: Optional[int] = None,
                  doctor_id: Optional[int] = None, date_from: Optional[date] = None,
                  date_to: Optional[date] = None):
    qs = _visits_qs()
    if search:
        qs = qs.filter(Q(visit_id__icontains=search) | Q(patient__first_name__icontains=search)
                       | Q(patient__last_name__icontains=search) | Q(diagnosis__icontains=search))
    if visit_type:
        qs = qs.filter(visit_type=visit_type)
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if date_from:
        qs = qs.filter(visit_date__gte=date_from)
    if date_to:
        qs = qs.filter(visit_date__lte=date_to)
    return qs


def _plain(value) -> str:
    return bleach.clean(value or '', tags=set(), strip=True)


def _clean_text(fields: dict) -> dict:
    for key in VISIT_TEXT_FIELDS:
        if isinstance(fields.get(key), str):
            fields[key] = bleach.clean(fields[key].strip(), tags=set(), strip=True)
    return fields


def _occupy_bed(bed_id: int, patient: Patient) -> Bed:
    bed = Bed.objects.select_for_update().filter(id=bed_id).first()
    if not bed:
        raise NotFound('bed not found')
    if bed.status != 'available':
        raise BedUnavailable(f'bed {bed.bed_number} is {bed.status}')
    bed.status = 'occupied'
    bed.patient = patient
    bed.assigned_date = timezone.now()
    bed.save(update_fields=['status', 'patient', 'assigned_date'])
    return bed


def _release_bed(bed: Optional[Bed]) -> None:
    if bed is None:
        return
    bed.status = 'available'
    bed.patient = None
    bed.assigned_date = None
    bed.save(update_fields=['status', 'patient', 'assigned_date'])


def create_visit(actor, *, patient_id: int, visit_type: str = 'opd', doctor_id: Optional[int] = None,
                 appointment_id: Optional[int] = None, bed_id: Optional[int] = None,
                 visit_date: Optional[date] = None, **fields) -> Visit:
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise NotFound('patient not found')
    if doctor_id and not StaffMember.objects.filter(id=doctor_id, role='doctor').exists():
        raise ValidationError({'doctorId': 'doctor not found'})
    if appointment_id and not Appointment.objects.filter(id=appointment_id, patient=patient).exists():
        raise ValidationError({'appointmentId': 'appointment not found for this patient'})
    if visit_type == 'ipd' and not bed_id:
        raise ValidationError({'bedId': 'an inpatient admission needs a bed'})
    fields = _clean_text({k: v for k, v in fields.items() if k in VISIT_UPDATABLE and k != 'status'})
    with transaction.atomic():
        bed = _occupy_bed(bed_id, patient) if visit_type == 'ipd' else None
        visit = Visit.objects.create(
            patient=patient,
            doctor_id=doctor_id,
            appointment_id=appointment_id,
            visit_type=visit_type,
            visit_date=visit_date or timezone.localdate(),
            bed=bed,
            admission_date=timezone.now() if bed else None,
            created_by=actor if getattr(actor, 'is_authenticated', False) else None,
            **fields,
        )
    log_action(user=actor, action='visit_create', object_type='visit', object_id=visit.id,
               detail={'visitId': visit.visit_id, 'type': visit_type, 'bed': bed.bed_number if bed else None})
    broadcast_refresh(['visits', 'beds'] if bed else ['visits'])
    return visit


def _release_held_bed(visit: Visit) -> None:
    """Free the visit's bed, unless another admission has since taken it."""
    if not visit.bed_id:
        return
    bed = Bed.objects.select_for_update().get(id=visit.bed_id)
    if bed.patient_id == visit.patient_id:
        _release_bed(bed)


def update_visit(actor, visit: Visit, fields: dict) -> Visit:
    fields = _clean_text({k: v for k, v in fields.items() if k in VISIT_UPDATABLE})
    status = fields.get('status')
    if status == 'discharged':
        raise ValidationError({'status': 'use the discharge endpoint to discharge a patient'})
    if visit.status in ('discharged', 'cancelled') and fields:
        raise ValidationError({'status': f'cannot modify a {visit.status} visit'})
    if status and status != visit.status and visit.status != 'active':
        raise ValidationError({'status': f'cannot change the status of a {visit.status} visit'})
    leaving_active = visit.status == 'active' and status in ('completed', 'cancelled')
    with transaction.atomic():
        for key, value in fields.items():
            setattr(visit, key, value)
        if leaving_active:
            _release_held_bed(visit)
        visit.save()
    log_action(user=actor, action='visit_update', object_type='visit', object_id=visit.id,
               detail={'fields': sorted(fields)})
    broadcast_refresh(['visits', 'beds'] if leaving_active and visit.bed_id else ['visits'])
    return visit


def delete_visit(actor, visit: Visit) -> None:
    with transaction.atomic():
        if visit.status == 'active':
            _release_held_bed(visit)
        pk, code = visit.id, visit.visit_id
        visit.delete()
    log_action(user=actor, action='visit_delete', object_type='visit', object_id=pk, detail={'visitId': code})
    broadcast_refresh(['visits', 'beds'])


def discharge_visit(actor, visit: Visit, summary: Optional[dict] = None) -> Visit:
    """Discharge an active IPD visit, free its bed and store an optional summary."""
    if visit.visit_type != 'ipd':
        raise ValidationError({'visitType': 'only inpatient visits can be discharged'})
    if visit.status != 'active':
        raise ValidationError({'status': f'cannot discharge a {visit.status} visit'})
    with transaction.atomic():
        _release_held_bed(visit)
        visit.status = 'discharged'
        visit.actual_discharge_date = timezone.now()
        visit.save(update_fields=['status', 'actual_discharge_date', 'updated_at'])
        if summary:
            DischargeSummary.objects.update_or_create(
                visit=visit,
                defaults={
                    'final_diagnosis': _plain(summary.get('final_diagnosis') or visit.diagnosis),
                    'treatment_given': _plain(summary.get('treatment_given')),
                    'medicines_at_discharge': summary.get('medicines_at_discharge') or [],
                    'follow_up_instructions': _plain(summary.get('follow_up_instructions')),
                    'final_notes': _plain(summary.get('final_notes')),
                    'created_by': actor if getattr(actor, 'is_authenticated', False) else None,
                },
            )
    log_action(user=actor, action='visit_discharge', object_type='visit', object_id=visit.id,
               detail={'visitId': visit.visit_id, 'summary': bool(summary)})
    broadcast_refresh(['visits', 'beds', 'kpis'])
    return visit


def get_discharge_summary(visit: Visit) -> DischargeSummary:
    s = DischargeSummary.objects.select_related('visit__patient', 'visit__doctor').filter(visit=visit).first()
    if not s:
        raise NotFound('discharge summary not found')
    return s


def record_vitals(actor, visit: Visit, vitals: dict) -> VisitVitals:
    errors = validate_vitals(vitals)
    if errors:
        raise ValidationError(errors)
    if visit.status in ('discharged', 'cancelled'):
        raise ValidationError({'status': f'cannot record vitals on a {visit.status} visit'})
    row = VisitVitals.objects.create(
        visit=visit,
        blood_pressure=_plain(vitals.get('blood_pressure')),
        temperature=Decimal(str(vitals['temperature'])) if vitals.get('temperature') is not None else None,
        heart_rate=vitals.get('heart_rate'),
        respiratory_rate=vitals.get('respiratory_rate'),
        oxygen_saturation=vitals.get('oxygen_saturation'),
        weight=Decimal(str(vitals['weight'])) if vitals.get('weight') is not None else None,
        recorded_by=actor if getattr(actor, 'is_authenticated', False) else None,
    )
    log_action(user=actor, action='vitals_record', object_type='visit', object_id=visit.id,
               detail={'vitalsId': row.id})
    return row


def visit_summary(qs=None, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = qs if qs is not None else Visit.objects.all()
    counts = qs.aggregate(
        total=Count('id'),
        opd=Count('id', filter=Q(visit_type='opd')),
        ipd=Count('id', filter=Q(visit_type='ipd')),
        active_ipd=Count('id', filter=Q(visit_type='ipd', status='active')),
        completed=Count('id', filter=Q(status__in=['completed', 'discharged'])),
        today=Count('id', filter=Q(visit_date=today)),
    )
    return {
        'totalVisits': counts['total'],
        'opdVisits': counts['opd'],
        'ipdVisits': counts['ipd'],
        'activeIpd': counts['active_ipd'],
        'completedVisits': counts['completed'],
        'todayVisits': counts['today'],
    }


def get_bed(pk: int) -> Bed:
    b = Bed.objects.select_related('patient').filter(id=pk).first()
    if not b:
        raise NotFound('bed not found')
    return b


def filter_beds(*, ward: Optional[str] = None, status: Optional[str] = None, bed_type: Optional[str] = None):
    qs = Bed.objects.select_related('patient')
    if ward:
        qs = qs.filter(ward=ward)
    if status:
        qs = qs.filter(status=status)
    if bed_type:
        qs = qs.filter(bed_type=bed_type)
    return qs


def create_bed(actor, **fields) -> Bed:
    fields = {k: v for k, v in fields.items() if k in BED_FIELDS}
    if fields.get('status') == 'occupied':
        raise ValidationError({'status': 'assign a patient to occupy a bed'})
    if Bed.objects.filter(bed_number=fields.get('bed_number')).exists():
        raise ValidationError({'bedNumber': 'bed number already exists'})
    bed = Bed.objects.create(**fields)
    log_action(user=actor, action='bed_create', object_type='bed', object_id=bed.id,
               detail={'bedNumber': bed.bed_number})
    broadcast_refresh(['beds'])
    return bed


def update_bed(actor, bed: Bed, fields: dict) -> Bed:
    fields = {k: v for k, v in fields.items() if k in BED_FIELDS}
    if 'status' in fields and (fields['status'] == 'occupied') != (bed.status == 'occupied'):
        raise ValidationError({'status': 'use assign or free to change occupancy'})
    if 'bed_number' in fields and Bed.objects.filter(bed_number=fields['bed_number']).exclude(id=bed.id).exists():
        raise ValidationError({'bedNumber': 'bed number already exists'})
    for key, value in fields.items():
        setattr(bed, key, value)
    bed.save()
    log_action(user=actor, action='bed_update', object_type='bed', object_id=bed.id,
               detail={'fields': sorted(fields)})
    broadcast_refresh(['beds'])
    return bed


def delete_bed(actor, bed: Bed) -> None:
    if bed.status == 'occupied':
        raise BedUnavailable('cannot delete an occupied bed')
    pk, number = bed.id, bed.bed_number
    bed.delete()
    log_action(user=actor, action='bed_delete', object_type='bed', object_id=pk, detail={'bedNumber': number})
    broadcast_refresh(['beds'])


def assign_bed(actor, bed_id: int, patient_id: int) -> Bed:
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise NotFound('patient not found')
    with transaction.atomic():
        bed = _occupy_bed(bed_id, patient)
    log_action(user=actor, action='bed_assign', object_type='bed', object_id=bed.id,
               detail={'patientId': patient.patient_id})
    broadcast_refresh(['beds', 'kpis'])
    return bed


def free_bed(actor, bed_id: int) -> Bed:
    with transaction.atomic():
        bed = Bed.objects.select_for_update().filter(id=bed_id).first()
        if not bed:
            raise NotFound('bed not found')
        if Visit.objects.filter(bed=bed, visit_type='ipd', status='active').exists():
            raise BedUnavailable('bed is held by an active admission; discharge the visit instead')
        _release_bed(bed)
        bed.last_cleaned = timezone.now()
        bed.save(update_fields=['last_cleaned'])
    log_action(user=actor, action='bed_free', object_type='bed', object_id=bed.id)
    broadcast_refresh(['beds', 'kpis'])
    return bed


def bed_summary() -> dict:
    qs = Bed.objects.all()
    counts = qs.aggregate(
        total=Count('id'),
        available=Count('id', filter=Q(status='available')),
        occupied=Count('id', filter=Q(status='occupied')),
        maintenance=Count('id', filter=Q(status='maintenance')),
        reserved=Count('id', filter=Q(status='reserved')),
    )
    wards = {}
    for row in qs.values('ward').order_by().annotate(total=Count('id'),
                                                     occupied=Count('id', filter=Q(status='occupied'))):
        wards[row['ward'] or 'Unassigned'] = {'total': row['total'], 'occupied': row['occupied']}
    return {
        'totalBeds': counts['total'],
        'availableBeds': counts['available'],
        'occupiedBeds': counts['occupied'],
        'maintenanceBeds': counts['maintenance'],
        'reservedBeds': counts['reserved'],
        'occupancyRate': occupancy_rate(counts['occupied'], counts['total']),
        'byWard': wards,
    }
