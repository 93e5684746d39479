"""
KPI aggregation and chart series.

Series are returned as lists of ``{'name': ..., 'value': ...}`` dicts so a
front end can plot them directly.  The KPI payload is cached for
``CLINIC_KPI_CACHE_SECONDS`` and re-warmed by ``manage.py refresh_caches``.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db.models import Avg, Count, F, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from clinic.models import Appointment, Bed, Dispense, Invoice, Medicine, Patient, StaffMember, Visit
from clinic.services.formatting import as_float, format_date, money
from clinic.services.visits import occupancy_rate

logger = logging.getLogger(__name__)

KPI_CACHE_KEY = 'kpi:metrics'
TIME_SLOT_BUCKETS = [
    ('9-11 AM', 9, 11),
    ('11-1 PM', 11, 13),
    ('1-3 PM', 13, 15),
    ('3-5 PM', 15, 17),
    ('5-7 PM', 17, 19),
]


def _paid_total(qs) -> Decimal:
    return qs.filter(status='paid').aggregate(total=Sum('total_amount'))['total'] or Decimal('0')


def calculate_kpi_metrics(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    invoices = Invoice.objects.all()
    current_inpatients = Visit.objects.filter(visit_type='ipd', status='active').count()
    beds = Bed.objects.aggregate(total=Count('id'), occupied=Count('id', filter=Q(status='occupied')))
    return {
        'totalPatients': Patient.objects.count(),
        'todayAppointments': Appointment.objects.filter(date=today).count(),
        'todayRevenue': as_float(money(_paid_total(invoices.filter(invoice_date=today)))),
        'monthlyRevenue': as_float(money(_paid_total(
            invoices.filter(invoice_date__year=today.year, invoice_date__month=today.month)))),
        'currentInpatients': current_inpatients,
        'lowStockAlerts': Medicine.objects.filter(quantity__lte=F('min_threshold')).count(),
        'totalStaff': StaffMember.objects.count(),
        'occupancyRate': occupancy_rate(beds['occupied'], beds['total']),
    }


def get_kpi_metrics(*, refresh: bool = False) -> dict:
    if not refresh:
        cached = cache.get(KPI_CACHE_KEY)
        if cached is not None:
            return cached
    data = calculate_kpi_metrics()
    cache.set(KPI_CACHE_KEY, data, settings.CLINIC_KPI_CACHE_SECONDS)
    return data


def monthly_patient_visits(qs=None) -> list[dict]:
    qs = qs if qs is not None else Visit.objects.all()
    rows = (qs.annotate(month=TruncMonth('visit_date')).values('month')
            .order_by('month').annotate(n=Count('id')))
    return [{'name': f"{row['month']:%b %Y}", 'value': row['n'], 'month': f"{row['month']:%Y-%m}"}
            for row in rows if row['month']]


def _day_label(d: date) -> str:
    return f"{d:%b} {d.day}"


def daily_revenue_trends(days: int = 30, today: Optional[date] = None) -> list[dict]:
    today = today or timezone.localdate()
    start = today - timedelta(days=days - 1)
    totals = {
        row['invoice_date']: row['total']
        for row in Invoice.objects.filter(status='paid', invoice_date__range=(start, today))
        .values('invoice_date').order_by().annotate(total=Sum('total_amount'))
    }
    series = []
    for offset in range(days):
        d = start + timedelta(days=offset)
        series.append({'name': _day_label(d), 'value': as_float(money(totals.get(d) or 0)), 'date': d.isoformat()})
    return series


def inventory_usage() -> list[dict]:
    rows = Medicine.objects.values('category').order_by('category').annotate(total=Sum('quantity'))
    return [{'name': row['category'], 'value': row['total'] or 0, 'category': row['category']} for row in rows]


def top_dispensed_medicines(limit: int = 5) -> list[dict]:
    rows = (Dispense.objects.values('medicine__name', 'medicine__category').order_by()
            .annotate(total=Sum('quantity')).order_by('-total')[:limit])
    return [{'name': row['medicine__name'], 'value': row['total'], 'category': row['medicine__category']}
            for row in rows]


def appointments_by_time_slot(appointments) -> list[dict]:
    counts = {label: 0 for label, _, _ in TIME_SLOT_BUCKETS}
    for a in appointments:
        hour = a.start_time.hour
        for label, low, high in TIME_SLOT_BUCKETS:
            if low <= hour < high:
                counts[label] += 1
                break
    return [{'name': label, 'value': value} for label, value in counts.items()]


def calculate_growth_rate(current, previous) -> int:
    if not previous:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


def growth_trend(rate) -> str:
    if rate > 0:
        return 'up'
    if rate < 0:
        return 'down'
    return 'neutral'


def _month_start(d: date, months_back: int) -> date:
    month_index = d.year * 12 + d.month - 1 - months_back
    return date(month_index // 12, month_index % 12 + 1, 1)


def doctor_analytics(doctor: StaffMember, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    appointments = Appointment.objects.filter(doctor=doctor)
    visits = Visit.objects.filter(doctor=doctor)

    week_start = today - timedelta(days=6)
    per_day = Counter(appointments.filter(date__range=(week_start, today)).values_list('date', flat=True))
    appointments_per_day = []
    for offset in range(7):
        d = week_start + timedelta(days=offset)
        appointments_per_day.append({'name': f"{d:%a}", 'value': per_day.get(d, 0), 'date': d.isoformat()})

    diagnoses = Counter(v for v in visits.exclude(diagnosis='').values_list('diagnosis', flat=True))
    completed = appointments.filter(status=Appointment.STATUS_COMPLETED)
    done = completed.aggregate(n=Count('id'), avg=Avg('duration'),
                               follow=Count('id', filter=Q(follow_up_required=True)))
    this_month = appointments.filter(date__gte=_month_start(today, 0), date__lte=today).count()
    last_month = appointments.filter(date__gte=_month_start(today, 1), date__lt=_month_start(today, 0)).count()
    growth = calculate_growth_rate(this_month, last_month)
    return {
        'doctorId': doctor.id,
        'doctorName': doctor.display_name,
        'appointmentsPerDay': appointments_per_day,
        'commonDiagnoses': [{'name': name, 'value': n} for name, n in diagnoses.most_common(5)],
        'patientLoadByTimeSlot': appointments_by_time_slot(appointments),
        'totalPatientsSeen': visits.count(),
        'totalAppointments': appointments.count(),
        'completedAppointments': done['n'],
        'averageConsultationTime': round(done['avg'] or 0),
        'followUpRate': round(done['follow'] / done['n'], 2) if done['n'] else 0,
        'monthlyGrowth': growth,
        'monthlyTrend': growth_trend(growth),
    }


def patient_analytics(patient: Patient, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    visits = Visit.objects.filter(patient=patient).select_related('doctor')
    invoices = Invoice.objects.filter(patient=patient)

    first_month = _month_start(today, 11)
    per_month = Counter((d.year, d.month) for d in
                        visits.filter(visit_date__gte=first_month).values_list('visit_date', flat=True))
    visits_summary = []
    for back in range(11, -1, -1):
        m = _month_start(today, back)
        visits_summary.append({'name': f"{m:%b}", 'value': per_month.get((m.year, m.month), 0)})

    billing_history = [
        {'name': f"{inv.invoice_date:%b}", 'value': as_float(inv.total_amount), 'date': format_date(inv.invoice_date)}
        for inv in invoices.order_by('-invoice_date')[:12]
    ]
    visit_amounts = {row['visit_id']: row['total'] for row in
                     invoices.exclude(visit=None).values('visit_id').order_by().annotate(total=Sum('total_amount'))}
    last_five = [
        {
            'date': format_date(v.visit_date),
            'doctor': v.doctor.display_name if v.doctor else None,
            'diagnosis': v.diagnosis,
            'amount': as_float(visit_amounts.get(v.id) or 0),
        }
        for v in visits.order_by('-visit_date', '-created_at')[:5]
    ]
    upcoming = Appointment.objects.filter(patient=patient, date__gte=today).exclude(
        status__in=[Appointment.STATUS_CANCELLED, Appointment.STATUS_COMPLETED, Appointment.STATUS_NO_SHOW]
    ).count()
    return {
        'patientId': patient.id,
        'patientName': patient.full_name,
        'visitsSummary': visits_summary,
        'billingHistory': billing_history,
        'lastFiveVisits': last_five,
        'upcomingAppointments': upcoming,
        'totalVisits': visits.count(),
        'totalSpent': as_float(money(invoices.aggregate(total=Sum('total_amount'))['total'] or 0)),
        'outstandingBalance': as_float(money(
            invoices.filter(status__in=['pending', 'partially_paid', 'overdue'])
            .aggregate(total=Sum('balance_amount'))['total'] or 0)),
    }
