"""
Django admin registrations for the clinic models.

Superusers can inspect and correct data at ``/admin/``.  Business rules
(slot conflicts, invoice totals, stock levels) live in
``clinic.services``; edits made here bypass them.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AuditEvent,
    Bed,
    Broadcast,
    DischargeSummary,
    Dispense,
    Invoice,
    InvoiceItem,
    MedicalReport,
    Medicine,
    Notification,
    PasswordResetRequest,
    Patient,
    Payment,
    Restock,
    StaffMember,
    StaffSchedule,
    User,
    Vendor,
    Visit,
    VisitVitals,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'email', 'is_active', 'must_change_password', 'last_login')
    list_filter = ('role', 'is_active')
    search_fields = ('username', 'first_name', 'last_name', 'email')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('patient_id', 'first_name', 'last_name', 'gender', 'phone', 'status', 'created_at')
    list_filter = ('status', 'gender', 'blood_group')
    search_fields = ('patient_id', 'first_name', 'last_name', 'phone', 'email')


class StaffScheduleInline(admin.TabularInline):
    model = StaffSchedule
    extra = 0


@admin.register(StaffMember)
class StaffMemberAdmin(admin.ModelAdmin):
    list_display = ('staff_id', 'first_name', 'last_name', 'role', 'department', 'status')
    list_filter = ('role', 'department', 'status', 'shift')
    search_fields = ('staff_id', 'first_name', 'last_name', 'email')
    inlines = [StaffScheduleInline]


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('appointment_id', 'patient', 'doctor', 'date', 'start_time', 'status')
    list_filter = ('status', 'date')
    search_fields = ('appointment_id', 'patient__first_name', 'patient__last_name', 'doctor__last_name')
    date_hierarchy = 'date'


@admin.register(Bed)
class BedAdmin(admin.ModelAdmin):
    list_display = ('bed_number', 'ward', 'room_number', 'bed_type', 'status', 'patient')
    list_filter = ('ward', 'bed_type', 'status')


class VisitVitalsInline(admin.TabularInline):
    model = VisitVitals
    extra = 0


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('visit_id', 'patient', 'doctor', 'visit_type', 'visit_date', 'status', 'bed')
    list_filter = ('visit_type', 'status')
    search_fields = ('visit_id', 'patient__first_name', 'patient__last_name', 'diagnosis')
    inlines = [VisitVitalsInline]


admin.site.register(DischargeSummary)


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'patient', 'invoice_date', 'total_amount', 'balance_amount', 'status')
    list_filter = ('status', 'payment_method', 'visit_type')
    search_fields = ('invoice_number', 'patient__first_name', 'patient__last_name')
    inlines = [InvoiceItemInline, PaymentInline]


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ('vendor_id', 'name', 'contact_person', 'phone', 'is_active')
    search_fields = ('vendor_id', 'name')


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = ('medicine_id', 'name', 'category', 'quantity', 'min_threshold', 'expiry_date', 'vendor')
    list_filter = ('category',)
    search_fields = ('medicine_id', 'name', 'generic_name')


admin.site.register(Restock)
admin.site.register(Dispense)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('recipient', 'type', 'title', 'priority', 'status', 'created_at')
    list_filter = ('type', 'priority', 'status')


admin.site.register(Broadcast)


@admin.register(MedicalReport)
class MedicalReportAdmin(admin.ModelAdmin):
    list_display = ('report_id', 'patient', 'report_type', 'title', 'status', 'priority', 'created_at')
    list_filter = ('report_type', 'status', 'priority')
    search_fields = ('report_id', 'title', 'patient__first_name', 'patient__last_name')


@admin.register(PasswordResetRequest)
class PasswordResetRequestAdmin(admin.ModelAdmin):
    list_display = ('email', 'role', 'status', 'created_at', 'resolved_at')
    list_filter = ('status',)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'action', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
    search_fields = ('action', 'object_id', 'user__username')
