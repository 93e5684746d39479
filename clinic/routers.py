"""
URL mappings for the hospital management API.

Paths carry no trailing slash (``APPEND_SLASH = False``).  Collection
endpoints answer GET (list) and POST (create); ``/<pk>`` endpoints
answer GET, PATCH/PUT and DELETE where the role allows it.
"""
from django.urls import path, include

from .auth_views import (
    change_password_view,
    jwt_logout_view,
    jwt_refresh_view,
    login_view,
    me_view,
    register_view,
)
from .views import analytics
from .views import appointments
from .views import billing
from .views import dashboard
from .views import health
from .views import inventory
from .views import notifications
from .views import patients
from .views import reports
from .views import staff
from .views import users
from .views import visits


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/register', register_view),
    path('api/auth/me', me_view),
    path('api/auth/change-password', change_password_view),
    path('api/password-reset-request', users.password_reset_request_view),

    # Users and staff accounts
    path('api/users', users.list_users),
    path('api/users/<int:pk>', users.user_detail),
    path('api/admin/create-staff', users.create_staff),
    path('api/admin/reset-staff-password', users.reset_staff_password_view),
    path('api/admin/password-reset-requests', users.list_password_reset_requests),
    path('api/admin/password-reset-requests/<int:pk>/resolve', users.resolve_password_reset_request_view),

    # Patients
    path('api/patients', patients.patients),
    path('api/patients/summary', patients.patients_summary),
    path('api/patients/export', patients.export_patients),
    path('api/patients/<int:pk>', patients.patient_detail),

    # Staff
    path('api/staff', staff.staff_list),
    path('api/staff/summary', staff.staff_summary_view),
    path('api/staff/doctors', staff.doctors),
    path('api/staff/<int:pk>', staff.staff_detail),
    path('api/staff/<int:pk>/schedule', staff.staff_schedule),
    path('api/staff/<int:pk>/availability', staff.staff_availability),

    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/summary', appointments.appointments_summary),
    path('api/appointments/availability', appointments.availability),
    path('api/appointments/patient/<int:patient_id>', appointments.patient_appointments),
    path('api/appointments/doctor/<int:doctor_id>', appointments.doctor_appointments),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/status', appointments.appointment_status),
    path('api/appointments/<int:pk>/cancel', appointments.appointment_cancel),
    path('api/appointments/<int:pk>/complete', appointments.appointment_complete),

    # Visits (OPD/IPD)
    path('api/visits', visits.visits),
    path('api/visits/summary', visits.visits_summary),
    path('api/visits/<int:pk>', visits.visit_detail),
    path('api/visits/<int:pk>/discharge', visits.visit_discharge),
    path('api/visits/<int:pk>/vitals', visits.visit_vitals),
    path('api/visits/<int:pk>/discharge-summary', visits.visit_discharge_summary),

    # Beds
    path('api/beds', visits.beds),
    path('api/beds/summary', visits.beds_summary),
    path('api/beds/<int:pk>', visits.bed_detail),
    path('api/beds/<int:pk>/assign', visits.bed_assign),
    path('api/beds/<int:pk>/free', visits.bed_free),

    # Billing
    path('api/invoices', billing.invoices),
    path('api/invoices/summary', billing.invoices_summary),
    path('api/invoices/services', billing.billing_catalogue),
    path('api/invoices/calculate', billing.calculate_totals),
    path('api/invoices/<int:pk>', billing.invoice_detail),
    path('api/invoices/<int:pk>/payments', billing.invoice_payments),
    path('api/invoices/<int:pk>/mark-paid', billing.invoice_mark_paid),

    # Pharmacy
    path('api/medicines', inventory.medicines),
    path('api/medicines/summary', inventory.medicines_summary),
    path('api/medicines/export', inventory.export_medicines),
    path('api/medicines/<int:pk>', inventory.medicine_detail),
    path('api/medicines/<int:pk>/restock', inventory.medicine_restock),
    path('api/medicines/<int:pk>/dispense', inventory.medicine_dispense),
    path('api/vendors', inventory.vendors),
    path('api/vendors/<int:pk>', inventory.vendor_detail),

    # Notifications
    path('api/notifications', notifications.notifications),
    path('api/notifications/summary', notifications.notifications_summary),
    path('api/notifications/read-all', notifications.notifications_read_all),
    path('api/notifications/send', notifications.send_notification),
    path('api/notifications/broadcast', notifications.broadcasts),
    path('api/notifications/<int:pk>', notifications.notification_archive),
    path('api/notifications/<int:pk>/read', notifications.notification_read),

    # Medical reports
    path('api/reports', reports.reports),
    path('api/reports/summary', reports.reports_summary),
    path('api/reports/<int:pk>', reports.report_detail),
    path('api/reports/<int:pk>/review', reports.report_review),

    # Analytics
    path('api/analytics/kpis', analytics.kpis),
    path('api/analytics/revenue-trends', analytics.revenue_trends),
    path('api/analytics/monthly-visits', analytics.monthly_visits),
    path('api/analytics/inventory-usage', analytics.inventory_usage_view),
    path('api/analytics/appointments-by-slot', analytics.appointments_by_slot),
    path('api/analytics/doctor/<int:pk>', analytics.doctor_analytics_view),
    path('api/analytics/patient/<int:pk>', analytics.patient_analytics_view),

    # Dashboards
    path('api/dashboard', dashboard.my_dashboard),
    path('api/dashboard/admin', dashboard.admin_dashboard_view),
    path('api/dashboard/doctor', dashboard.doctor_dashboard_view),
    path('api/dashboard/nurse', dashboard.nurse_dashboard_view),
    path('api/dashboard/receptionist', dashboard.receptionist_dashboard_view),
    path('api/dashboard/patient', dashboard.patient_dashboard_view),
]
