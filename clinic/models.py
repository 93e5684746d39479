"""
Database models for the hospital management backend.

The models cover people (users, patients, staff and their weekly
schedules), clinical activity (appointments, visits, vitals, beds,
discharge summaries, medical reports), money (invoices, line items and
payments), the pharmacy (medicines, vendors, restocks, dispenses) and
communication (notifications, broadcasts).  Human readable identifiers
such as ``APT202501xxxx`` are generated on first save.
"""
from __future__ import annotations

import secrets
import string
import time
from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q
from django.utils import timezone


ZERO = Decimal('0.00')


def _random_digits(length: int) -> str:
    return ''.join(secrets.choice(string.digits) for _ in range(length))


def _random_token(length: int) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def _timestamp_tail(length: int = 6) -> str:
    return str(int(time.time() * 1000))[-length:]


def _base36(number: int) -> str:
    chars = string.digits + string.ascii_uppercase
    out = ''
    while number:
        number, rem = divmod(number, 36)
        out = chars[rem] + out
    return out or '0'


def unique_code(model, field: str, build, attempts: int = 20) -> str:
    """Return a value from ``build()`` not yet used in ``model.field``."""
    for _ in range(attempts):
        candidate = build()
        if not model.objects.filter(**{field: candidate}).exists():
            return candidate
    raise RuntimeError(f'could not generate a unique {model.__name__}.{field}')


ROLE_PATIENT = 'patient'
STAFF_ROLE_CHOICES = [
    ('admin', 'Administrator'),
    ('doctor', 'Doctor'),
    ('nurse', 'Nurse'),
    ('receptionist', 'Receptionist'),
    ('lab_technician', 'Lab Technician'),
]


class User(AbstractUser):
    """Login account with a single role.

    Staff accounts created by an administrator start with
    ``must_change_password`` set; it is cleared on the first successful
    password change.
    """
    ROLE_CHOICES = STAFF_ROLE_CHOICES + [(ROLE_PATIENT, 'Patient')]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)
    phone = models.CharField(max_length=20, blank=True)
    must_change_password = models.BooleanField(default=False)
    login_count = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]
    BLOOD_GROUPS = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

    patient_id = models.CharField(max_length=20, unique=True, editable=False)
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_record'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    blood_group = models.CharField(max_length=5, blank=True)
    emergency_contact_name = models.CharField(max_length=200, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    medical_history = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='registered_patients'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        if not self.patient_id:
            year = timezone.now().year
            self.patient_id = unique_code(Patient, 'patient_id', lambda: f"PAT{year}{_random_digits(4)}")
        super().save(*args, **kwargs)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return f"{self.full_name} ({self.patient_id})"


class StaffMember(models.Model):
    """Employee record; doctors carry a specialization and consultation fee."""
    SHIFT_CHOICES = [
        ('morning', 'Morning'),
        ('evening', 'Evening'),
        ('night', 'Night'),
        ('rotating', 'Rotating'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('on_leave', 'On Leave'),
        ('inactive', 'Inactive'),
    ]
    ID_PREFIXES = {
        'doctor': 'DOC',
        'nurse': 'NUR',
        'receptionist': 'REC',
        'lab_technician': 'LAB',
        'admin': 'ADM',
    }

    staff_id = models.CharField(max_length=20, unique=True, editable=False)
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff_profile'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    role = models.CharField(max_length=20, choices=STAFF_ROLE_CHOICES, db_index=True)
    department = models.CharField(max_length=100, blank=True, db_index=True)
    specialization = models.CharField(max_length=100, blank=True)
    license_number = models.CharField(max_length=50, blank=True)
    qualification = models.CharField(max_length=200, blank=True)
    experience_years = models.PositiveIntegerField(default=0)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    shift = models.CharField(max_length=10, choices=SHIFT_CHOICES, default='morning')
    wards = models.JSONField(default=list, blank=True)
    hire_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['first_name', 'last_name']

    def save(self, *args, **kwargs):
        if not self.staff_id:
            prefix = self.ID_PREFIXES.get(self.role, 'STF')
            year = timezone.now().year
            self.staff_id = unique_code(StaffMember, 'staff_id', lambda: f"{prefix}{year}{_random_digits(3)}")
        super().save(*args, **kwargs)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self) -> str:
        if self.role == 'doctor':
            return f"Dr. {self.full_name}"
        return self.full_name

    def __str__(self) -> str:
        return f"{self.display_name} ({self.staff_id})"


class StaffSchedule(models.Model):
    """Weekly working window; ``day_of_week`` counts from 0 = Sunday."""
    DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']

    staff = models.ForeignKey(StaffMember, on_delete=models.CASCADE, related_name='schedules')
    day_of_week = models.PositiveSmallIntegerField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    is_available = models.BooleanField(default=True)

    class Meta:
        ordering = ['day_of_week', 'start_time']
        indexes = [models.Index(fields=['staff', 'day_of_week'])]

    def __str__(self) -> str:
        return f"{self.staff_id} {self.DAY_NAMES[self.day_of_week % 7]} {self.start_time}-{self.end_time}"


class Appointment(models.Model):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no_show'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No Show'),
    ]

    appointment_id = models.CharField(max_length=20, unique=True, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(StaffMember, on_delete=models.PROTECT, related_name='appointments')
    date = models.DateField(db_index=True)
    start_time = models.TimeField()
    end_time = models.TimeField()
    duration = models.PositiveIntegerField(default=30)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    reason = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    reminder_sent = models.BooleanField(default=False)
    follow_up_required = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='booked_appointments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['date', 'start_time']
        indexes = [
            models.Index(fields=['doctor', 'date']),
            models.Index(fields=['patient', 'date']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'date', 'start_time'],
                condition=~Q(status='cancelled'),
                name='uniq_active_doctor_slot',
            ),
        ]

    def save(self, *args, **kwargs):
        if not self.appointment_id:
            now = timezone.now()
            self.appointment_id = unique_code(
                Appointment, 'appointment_id', lambda: f"APT{now.year}{now.month:02d}{_random_digits(4)}"
            )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.appointment_id} {self.date} {self.start_time:%H:%M}"


class Bed(models.Model):
    TYPE_CHOICES = [
        ('general', 'General'),
        ('semi_private', 'Semi Private'),
        ('private', 'Private'),
        ('icu', 'ICU'),
    ]
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('occupied', 'Occupied'),
        ('maintenance', 'Maintenance'),
        ('reserved', 'Reserved'),
    ]

    bed_number = models.CharField(max_length=20, unique=True)
    room_number = models.CharField(max_length=20, blank=True)
    ward = models.CharField(max_length=100, blank=True, db_index=True)
    bed_type = models.CharField(max_length=15, choices=TYPE_CHOICES, default='general')
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='available', db_index=True)
    patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='beds'
    )
    assigned_date = models.DateTimeField(null=True, blank=True)
    last_cleaned = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['ward', 'bed_number']

    def __str__(self) -> str:
        return f"Bed {self.bed_number} ({self.status})"


class Visit(models.Model):
    TYPE_CHOICES = [
        ('opd', 'Outpatient'),
        ('ipd', 'Inpatient'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('discharged', 'Discharged'),
        ('cancelled', 'Cancelled'),
    ]

    visit_id = models.CharField(max_length=40, unique=True, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='visits')
    doctor = models.ForeignKey(
        StaffMember, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits'
    )
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits'
    )
    visit_type = models.CharField(max_length=3, choices=TYPE_CHOICES, default='opd', db_index=True)
    visit_date = models.DateField(default=timezone.localdate, db_index=True)
    chief_complaint = models.CharField(max_length=255, blank=True)
    symptoms = models.JSONField(default=list, blank=True)
    diagnosis = models.CharField(max_length=255, blank=True)
    prescribed_medicines = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='active', db_index=True)
    bed = models.ForeignKey(Bed, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits')
    admission_date = models.DateTimeField(null=True, blank=True)
    expected_discharge_date = models.DateField(null=True, blank=True)
    actual_discharge_date = models.DateTimeField(null=True, blank=True)
    follow_up_date = models.DateField(null=True, blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='recorded_visits'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-visit_date', '-created_at']

    def save(self, *args, **kwargs):
        if not self.visit_id:
            self.visit_id = unique_code(
                Visit, 'visit_id', lambda: f"VIS-{_base36(int(time.time() * 1000))}-{_random_token(6)}"
            )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.visit_id} ({self.visit_type})"


class VisitVitals(models.Model):
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name='vitals')
    blood_pressure = models.CharField(max_length=20, blank=True)
    temperature = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    heart_rate = models.PositiveIntegerField(null=True, blank=True)
    respiratory_rate = models.PositiveIntegerField(null=True, blank=True)
    oxygen_saturation = models.PositiveIntegerField(null=True, blank=True)
    weight = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    recorded_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-recorded_at']


class DischargeSummary(models.Model):
    visit = models.OneToOneField(Visit, on_delete=models.CASCADE, related_name='discharge_summary')
    final_diagnosis = models.CharField(max_length=255)
    treatment_given = models.TextField(blank=True)
    medicines_at_discharge = models.JSONField(default=list, blank=True)
    follow_up_instructions = models.TextField(blank=True)
    final_notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)


class Invoice(models.Model):
    """Patient invoice; amounts are recomputed from items on every write."""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending', 'Pending'),
        ('partially_paid', 'Partially Paid'),
        ('paid', 'Paid'),
        ('overdue', 'Overdue'),
        ('cancelled', 'Cancelled'),
    ]
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Credit/Debit Card'),
        ('upi', 'UPI'),
        ('net_banking', 'Net Banking'),
        ('insurance', 'Insurance'),
        ('cheque', 'Cheque'),
    ]

    invoice_number = models.CharField(max_length=30, unique=True, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='invoices')
    doctor = models.ForeignKey(
        StaffMember, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices'
    )
    visit = models.ForeignKey(Visit, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices')
    visit_type = models.CharField(max_length=3, choices=Visit.TYPE_CHOICES, default='opd')
    invoice_date = models.DateField(default=timezone.localdate, db_index=True)
    due_date = models.DateField(null=True, blank=True)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    tax_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    balance_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default='pending', db_index=True)
    payment_method = models.CharField(max_length=15, choices=PAYMENT_METHOD_CHOICES, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='issued_invoices'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-invoice_date', '-created_at']

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            self.invoice_number = unique_code(
                Invoice, 'invoice_number', lambda: f"INV-{_timestamp_tail()}-{_random_digits(3)}"
            )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.invoice_number


class InvoiceItem(models.Model):
    CATEGORY_CHOICES = [
        ('consultation', 'Consultation'),
        ('test', 'Test'),
        ('bed_charge', 'Bed Charge'),
        ('procedure', 'Procedure'),
        ('medicine', 'Medicine'),
        ('other', 'Other'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=255)
    category = models.CharField(max_length=15, choices=CATEGORY_CHOICES, default='other')
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    class Meta:
        ordering = ['id']


class Payment(models.Model):
    payment_id = models.CharField(max_length=30, unique=True, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=15, choices=Invoice.PAYMENT_METHOD_CHOICES)
    transaction_id = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=10, default='completed')
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    payment_date = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-payment_date']

    def save(self, *args, **kwargs):
        if not self.payment_id:
            self.payment_id = unique_code(
                Payment, 'payment_id', lambda: f"PAY-{_timestamp_tail()}-{_random_digits(3)}"
            )
        super().save(*args, **kwargs)


class Vendor(models.Model):
    vendor_id = models.CharField(max_length=20, unique=True, editable=False)
    name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=200, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.vendor_id:
            self.vendor_id = unique_code(Vendor, 'vendor_id', lambda: f"VEN{_timestamp_tail()}{_random_digits(3)}")
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.name


class Medicine(models.Model):
    CATEGORY_CHOICES = [
        ('tablet', 'Tablet'),
        ('capsule', 'Capsule'),
        ('syrup', 'Syrup'),
        ('injection', 'Injection'),
        ('ointment', 'Ointment'),
        ('drops', 'Drops'),
        ('inhaler', 'Inhaler'),
        ('other', 'Other'),
    ]

    medicine_id = models.CharField(max_length=20, unique=True, editable=False)
    name = models.CharField(max_length=200, db_index=True)
    generic_name = models.CharField(max_length=200, blank=True)
    category = models.CharField(max_length=15, choices=CATEGORY_CHOICES, default='tablet')
    manufacturer = models.CharField(max_length=200, blank=True)
    batch_number = models.CharField(max_length=50, blank=True)
    quantity = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    total_value = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    min_threshold = models.PositiveIntegerField(default=10)
    expiry_date = models.DateField(null=True, blank=True)
    expiry_alert_sent = models.BooleanField(default=False)
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.SET_NULL, related_name='medicines')
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def save(self, *args, **kwargs):
        if not self.medicine_id:
            self.medicine_id = unique_code(
                Medicine, 'medicine_id', lambda: f"MED{_timestamp_tail()}{_random_digits(3)}"
            )
        self.total_value = (Decimal(self.quantity) * Decimal(self.unit_price)).quantize(Decimal('0.01'))
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} ({self.medicine_id})"


class Restock(models.Model):
    medicine = models.ForeignKey(Medicine, on_delete=models.CASCADE, related_name='restocks')
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.SET_NULL)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    batch_number = models.CharField(max_length=50, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    restocked_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)


class Dispense(models.Model):
    dispense_id = models.CharField(max_length=20, unique=True, editable=False)
    medicine = models.ForeignKey(Medicine, on_delete=models.CASCADE, related_name='dispenses')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='dispenses')
    visit = models.ForeignKey(Visit, null=True, blank=True, on_delete=models.SET_NULL, related_name='dispenses')
    quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True)
    dispensed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.dispense_id:
            self.dispense_id = unique_code(
                Dispense, 'dispense_id', lambda: f"DSP{_timestamp_tail()}{_random_digits(3)}"
            )
        super().save(*args, **kwargs)


class Notification(models.Model):
    TYPE_CHOICES = [
        ('appointment_booked', 'Appointment Booked'),
        ('appointment_cancelled', 'Appointment Cancelled'),
        ('appointment_reminder', 'Appointment Reminder'),
        ('report_uploaded', 'Report Uploaded'),
        ('invoice_payment', 'Invoice Payment'),
        ('low_stock_alert', 'Low Stock Alert'),
        ('medicine_expired', 'Medicine Expired'),
        ('custom_message', 'Custom Message'),
        ('system_alert', 'System Alert'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('critical', 'Critical'),
    ]
    STATUS_CHOICES = [
        ('unread', 'Unread'),
        ('read', 'Read'),
        ('archived', 'Archived'),
    ]

    recipient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    sender = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='sent_notifications'
    )
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='unread', db_index=True)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [models.Index(fields=['recipient', 'status'])]


class Broadcast(models.Model):
    broadcast_id = models.CharField(max_length=40, unique=True, editable=False)
    title = models.CharField(max_length=255)
    message = models.TextField()
    priority = models.CharField(max_length=10, choices=Notification.PRIORITY_CHOICES, default='medium')
    target_group = models.CharField(max_length=20, default='all')
    target_user_ids = models.JSONField(default=list, blank=True)
    recipient_count = models.PositiveIntegerField(default=0)
    sender = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.broadcast_id:
            self.broadcast_id = unique_code(
                Broadcast, 'broadcast_id', lambda: f"BROADCAST-{int(time.time() * 1000)}-{_random_token(6)}"
            )
        super().save(*args, **kwargs)


class MedicalReport(models.Model):
    TYPE_CHOICES = [
        ('lab', 'Lab'),
        ('radiology', 'Radiology'),
        ('prescription', 'Prescription'),
        ('discharge', 'Discharge'),
        ('consultation', 'Consultation'),
        ('other', 'Other'),
    ]
    STATUS_CHOICES = [
        ('uploaded', 'Uploaded'),
        ('pending_review', 'Pending Review'),
        ('reviewed', 'Reviewed'),
        ('archived', 'Archived'),
    ]
    PRIORITY_CHOICES = [
        ('normal', 'Normal'),
        ('urgent', 'Urgent'),
        ('critical', 'Critical'),
    ]

    report_id = models.CharField(max_length=40, unique=True, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='reports')
    doctor = models.ForeignKey(
        StaffMember, null=True, blank=True, on_delete=models.SET_NULL, related_name='reports'
    )
    visit = models.ForeignKey(Visit, null=True, blank=True, on_delete=models.SET_NULL, related_name='reports')
    report_type = models.CharField(max_length=15, choices=TYPE_CHOICES, default='other', db_index=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    file_url = models.URLField(max_length=500, blank=True)
    file_name = models.CharField(max_length=255, blank=True)
    file_size = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default='uploaded', db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    tags = models.JSONField(default=list, blank=True)
    uploaded_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='uploaded_reports'
    )
    reviewed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='reviewed_reports'
    )
    review_notes = models.TextField(blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        if not self.report_id:
            self.report_id = unique_code(
                MedicalReport, 'report_id', lambda: f"RPT-{int(time.time() * 1000)}-{_random_token(6)}"
            )
        super().save(*args, **kwargs)


class PasswordResetRequest(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('resolved', 'Resolved'),
        ('rejected', 'Rejected'),
    ]

    email = models.EmailField()
    role = models.CharField(max_length=20, blank=True)
    message = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    resolved_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]
