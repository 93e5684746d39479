import logging
from typing import Optional

import bleach
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.models import MedicalReport, Patient, StaffMember, Visit
from clinic.services.audit import log_action
from clinic.services.notifications import notify

logger = logging.getLogger(__name__)

UPLOAD_ROLES = ('admin', 'doctor', 'lab_technician')
AVAILABLE_TAGS = [
    'Urgent', 'Critical', 'Follow-up', 'Routine', 'Emergency', 'Pre-operative',
    'Post-operative', 'Chronic Care', 'Preventive', 'Diagnostic',
]
UPDATABLE_FIELDS = ('title', 'description', 'report_type', 'priority', 'tags', 'file_url', 'file_name',
                    'file_size', 'status', 'doctor_id', 'visit_id')


def _doctor_user_id(report: MedicalReport) -> Optional[int]:
    return report.doctor.user_id if report.doctor else None


def can_user_access_report(user, report: MedicalReport) -> bool:
    role = getattr(user, 'role', '')
    if role in ('admin', 'nurse'):
        return True
    if role == 'doctor':
        return report.uploaded_by_id == user.id or _doctor_user_id(report) == user.id
    if role == 'lab_technician':
        return report.uploaded_by_id == user.id and report.report_type == 'lab'
    if role == 'patient':
        return report.patient.user_id == user.id
    return False


def can_user_upload_report(user) -> bool:
    return getattr(user, 'role', '') in UPLOAD_ROLES


def can_user_delete_report(user, report: MedicalReport) -> bool:
    if getattr(user, 'role', '') == 'admin':
        return True
    return report.uploaded_by_id == user.id


def format_report(r: MedicalReport) -> dict:
    return {
        'id': r.id,
        'reportId': r.report_id,
        'patientId': r.patient_id,
        'patientName': r.patient.full_name,
        'doctorId': r.doctor_id,
        'doctorName': r.doctor.display_name if r.doctor else None,
        'visitId': r.visit_id,
        'reportType': r.report_type,
        'title': r.title,
        'description': r.description,
        'fileUrl': r.file_url,
        'fileName': r.file_name,
        'fileSize': r.file_size,
        'status': r.status,
        'priority': r.priority,
        'tags': r.tags,
        'uploadedBy': r.uploaded_by_id,
        'reviewedBy': r.reviewed_by_id,
        'reviewNotes': r.review_notes,
        'reviewedAt': r.reviewed_at.isoformat() if r.reviewed_at else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


def _qs():
    return MedicalReport.objects.select_related('patient', 'doctor')


def get_report(user, pk: int) -> MedicalReport:
    r = _qs().filter(id=pk).first()
    if not r:
        raise NotFound('report not found')
    if not can_user_access_report(user, r):
        raise PermissionDenied('forbidden for this report')
    return r


def filter_reports(user, *, search: Optional[str] = None, report_type: Optional[str] = None,
                   status: Optional[str] = None, priority: Optional[str] = None,
                   patient_id: Optional[int] = None, tag: Optional[str] = None) -> list[MedicalReport]:
    qs = _qs()
    role = getattr(user, 'role', '')
    if role == 'patient':
        qs = qs.filter(patient__user=user)
    elif role == 'doctor':
        qs = qs.filter(Q(uploaded_by=user) | Q(doctor__user=user))
    elif role == 'lab_technician':
        qs = qs.filter(uploaded_by=user, report_type='lab')
    elif role not in ('admin', 'nurse'):
        return []
    if search:
        qs = qs.filter(Q(title__icontains=search) | Q(report_id__icontains=search)
                       | Q(patient__first_name__icontains=search) | Q(patient__last_name__icontains=search))
    if report_type:
        qs = qs.filter(report_type=report_type)
    if status:
        qs = qs.filter(status=status)
    if priority:
        qs = qs.filter(priority=priority)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    reports = list(qs)
    if tag:
        # tags is a JSON list
        reports = [r for r in reports if tag in (r.tags or [])]
    return reports


def _clean(fields: dict) -> dict:
    for key in ('title', 'description', 'file_name'):
        if isinstance(fields.get(key), str):
            fields[key] = bleach.clean(fields[key].strip(), tags=set(), strip=True)
    if fields.get('doctor_id') and not StaffMember.objects.filter(id=fields['doctor_id'], role='doctor').exists():
        raise ValidationError({'doctorId': 'doctor not found'})
    if fields.get('visit_id') and not Visit.objects.filter(id=fields['visit_id']).exists():
        raise ValidationError({'visitId': 'visit not found'})
    return fields


def create_report(actor, *, patient_id: int, title: str, **fields) -> MedicalReport:
    if not can_user_upload_report(actor):
        raise PermissionDenied('you are not allowed to upload reports')
    patient = Patient.objects.select_related('user').filter(id=patient_id).first()
    if not patient:
        raise NotFound('patient not found')
    fields = _clean({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
    fields.setdefault('status', 'pending_review' if fields.get('priority') in ('urgent', 'critical') else 'uploaded')
    report = MedicalReport.objects.create(
        patient=patient,
        title=bleach.clean(title.strip(), tags=set(), strip=True),
        uploaded_by=actor,
        **fields,
    )
    log_action(user=actor, action='report_upload', object_type='report', object_id=report.id,
               detail={'reportId': report.report_id, 'patientId': patient.patient_id})
    notify(patient.user, 'report_uploaded',
           {'reportType': report.get_report_type_display(), 'patientName': patient.full_name,
            'reportId': report.report_id},
           sender=actor, priority='high' if report.priority != 'normal' else 'medium')
    if report.doctor and report.doctor.user and report.doctor.user != actor:
        notify(report.doctor.user, 'report_uploaded',
               {'reportType': report.get_report_type_display(), 'patientName': patient.full_name,
                'reportId': report.report_id}, sender=actor)
    return report


def update_report(actor, report: MedicalReport, fields: dict) -> MedicalReport:
    if not can_user_delete_report(actor, report):
        raise PermissionDenied('only the uploader or an administrator may edit this report')
    fields = _clean({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
    for key, value in fields.items():
        setattr(report, key, value)
    report.save()
    log_action(user=actor, action='report_update', object_type='report', object_id=report.id,
               detail={'fields': sorted(fields)})
    return report


def review_report(actor, report: MedicalReport, *, notes: str = '', status: str = 'reviewed') -> MedicalReport:
    if getattr(actor, 'role', '') not in ('admin', 'doctor'):
        raise PermissionDenied('only doctors and administrators review reports')
    if status not in ('reviewed', 'pending_review', 'archived'):
        raise ValidationError({'status': 'invalid review status'})
    report.status = status
    report.review_notes = bleach.clean(notes or '', tags=set(), strip=True)
    report.reviewed_by = actor
    report.reviewed_at = timezone.now()
    report.save(update_fields=['status', 'review_notes', 'reviewed_by', 'reviewed_at', 'updated_at'])
    log_action(user=actor, action='report_review', object_type='report', object_id=report.id,
               detail={'status': status})
    return report


def delete_report(actor, report: MedicalReport) -> None:
    if not can_user_delete_report(actor, report):
        raise PermissionDenied('only the uploader or an administrator may delete this report')
    pk, code = report.id, report.report_id
    report.delete()
    log_action(user=actor, action='report_delete', object_type='report', object_id=pk, detail={'reportId': code})


def report_summary(reports: list[MedicalReport]) -> dict:
    ids = [r.id for r in reports]
    qs = MedicalReport.objects.filter(id__in=ids)
    counts = qs.aggregate(
        total=Count('id'),
        pending=Count('id', filter=Q(status__in=['uploaded', 'pending_review'])),
        reviewed=Count('id', filter=Q(status='reviewed')),
        urgent=Count('id', filter=Q(priority__in=['urgent', 'critical'])),
    )
    by_type = {row['report_type']: row['n'] for row in qs.values('report_type').order_by().annotate(n=Count('id'))}
    return {
        'totalReports': counts['total'],
        'pendingReview': counts['pending'],
        'reviewed': counts['reviewed'],
        'urgent': counts['urgent'],
        'byType': by_type,
    }
