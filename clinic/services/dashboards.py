"""Per-role dashboard payloads."""
from __future__ import annotations

from datetime import date
from typing import Optional

from django.db.models import F
from django.utils import timezone

from clinic.models import Appointment, Bed, Invoice, MedicalReport, Medicine, Notification, Visit, VisitVitals
from clinic.services.analytics import get_kpi_metrics
from clinic.services.appointments import appointment_summary, format_appointment
from clinic.services.billing import format_invoice
from clinic.services.inventory import format_medicine
from clinic.services.patients import get_patient_for_user
from clinic.services.reports import format_report
from clinic.services.staff import get_staff_for_user
from clinic.services.visits import bed_summary, format_bed, format_visit, format_vitals_row

RECENT = 5
OPEN_APPOINTMENT = [Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED, Appointment.STATUS_IN_PROGRESS]


def _appointments():
    return Appointment.objects.select_related('patient', 'doctor')


def admin_dashboard(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    recent = _appointments().order_by('-created_at')[:RECENT]
    low_stock = Medicine.objects.select_related('vendor').filter(quantity__lte=F('min_threshold')).order_by('quantity')
    return {
        'kpis': get_kpi_metrics(),
        'appointments': appointment_summary(today=today),
        'recentAppointments': [format_appointment(a) for a in recent],
        'lowStock': [format_medicine(m) for m in low_stock[:10]],
        'beds': bed_summary(),
    }


def doctor_dashboard(user, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    doctor = get_staff_for_user(user)
    if doctor is None:
        return {'profile': None, 'todayAppointments': [], 'activeInpatients': [], 'pendingReports': []}
    todays = _appointments().filter(doctor=doctor, date=today).order_by('start_time')
    inpatients = Visit.objects.select_related('patient', 'doctor', 'bed').filter(
        doctor=doctor, visit_type='ipd', status='active')
    pending = MedicalReport.objects.select_related('patient', 'doctor').filter(
        doctor=doctor, status__in=['uploaded', 'pending_review'])
    return {
        'profile': {'id': doctor.id, 'staffId': doctor.staff_id, 'name': doctor.display_name,
                    'specialization': doctor.specialization},
        'todayAppointments': [format_appointment(a) for a in todays],
        'summary': appointment_summary(_appointments().filter(doctor=doctor), today=today),
        'activeInpatients': [format_visit(v) for v in inpatients],
        'pendingReports': [format_report(r) for r in pending[:10]],
    }


def nurse_dashboard(today: Optional[date] = None) -> dict:
    active = Visit.objects.select_related('patient', 'doctor', 'bed').filter(visit_type='ipd', status='active')
    latest_vitals = VisitVitals.objects.filter(visit__in=active).order_by('-recorded_at')[:10]
    low_stock = Medicine.objects.filter(quantity__lte=F('min_threshold')).count()
    return {
        'activeInpatients': [format_visit(v) for v in active],
        'beds': bed_summary(),
        'latestVitals': [format_vitals_row(v) for v in latest_vitals],
        'lowStockAlerts': low_stock,
    }


def receptionist_dashboard(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    todays = _appointments().filter(date=today).order_by('start_time')
    pending = Invoice.objects.select_related('patient', 'doctor').filter(
        status__in=['pending', 'partially_paid', 'overdue']).order_by('due_date')
    available = Bed.objects.select_related('patient').filter(status='available')
    return {
        'todayAppointments': [format_appointment(a) for a in todays],
        'summary': appointment_summary(today=today),
        'pendingInvoices': [format_invoice(i) for i in pending[:10]],
        'availableBeds': [format_bed(b) for b in available[:20]],
    }


def patient_dashboard(user, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    patient = get_patient_for_user(user)
    unread = Notification.objects.filter(recipient=user, status='unread').count()
    if patient is None:
        return {'profile': None, 'upcomingAppointments': [], 'invoices': [], 'reports': [],
                'unreadNotifications': unread}
    upcoming = _appointments().filter(patient=patient, date__gte=today, status__in=OPEN_APPOINTMENT)
    invoices = Invoice.objects.select_related('patient', 'doctor').filter(patient=patient)[:RECENT]
    reports = MedicalReport.objects.select_related('patient', 'doctor').filter(patient=patient)[:RECENT]
    return {
        'profile': {'id': patient.id, 'patientId': patient.patient_id, 'name': patient.full_name},
        'upcomingAppointments': [format_appointment(a) for a in upcoming],
        'invoices': [format_invoice(i) for i in invoices],
        'reports': [format_report(r) for r in reports],
        'unreadNotifications': unread,
    }


def lab_dashboard(user) -> dict:
    mine = MedicalReport.objects.select_related('patient', 'doctor').filter(uploaded_by=user, report_type='lab')
    return {
        'recentReports': [format_report(r) for r in mine[:10]],
        'awaitingReview': mine.filter(status__in=['uploaded', 'pending_review']).count(),
    }


def dashboard_for(user) -> dict:
    role = getattr(user, 'role', '')
    if role == 'admin':
        data = admin_dashboard()
    elif role == 'doctor':
        data = doctor_dashboard(user)
    elif role == 'nurse':
        data = nurse_dashboard()
    elif role == 'receptionist':
        data = receptionist_dashboard()
    elif role == 'patient':
        data = patient_dashboard(user)
    elif role == 'lab_technician':
        data = lab_dashboard(user)
    else:
        data = {}
    return {'role': role, **data}
