"""
Management command to populate the database with demo data.
"""
import random
from datetime import time, timedelta

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from clinic.models import (
    Appointment,
    Bed,
    Medicine,
    Patient,
    StaffMember,
    StaffSchedule,
    User,
    Vendor,
    Visit,
)
from clinic.services.billing import COMMON_SERVICES, create_invoice, record_payment

DEMO_PASSWORD = 'Hms@12345'


class Command(BaseCommand):
    help = 'Populate the database with demo patients, staff, beds, medicines, appointments and invoices'

    def add_arguments(self, parser):
        parser.add_argument('--patients', type=int, default=20)
        parser.add_argument('--seed', type=int, default=None, help='random seed for repeatable data')

    @transaction.atomic
    def handle(self, *args, **options):
        if options['seed'] is not None:
            random.seed(options['seed'])
        self.stdout.write('Creating demo data...')

        admin = self.create_admin()
        doctors = self.create_doctors()
        self.create_support_staff()
        patients = self.create_patients(options['patients'], admin)
        self.create_beds()
        vendors = self.create_vendors()
        self.create_medicines(vendors)
        appointments = self.create_appointments(patients, doctors, admin)
        self.create_visits(appointments, admin)
        self.create_invoices(appointments, admin)

        self.stdout.write(self.style.SUCCESS('Demo data created.'))

    def _user(self, username, role, first_name, last_name):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={'role': role, 'first_name': first_name, 'last_name': last_name,
                      'email': f'{username}@hms.local'},
        )
        if created:
            user.set_password(DEMO_PASSWORD)
            user.save(update_fields=['password'])
        return user

    def create_admin(self):
        admin = self._user('admin', 'admin', 'System', 'Admin')
        StaffMember.objects.get_or_create(
            user=admin, defaults={'first_name': 'System', 'last_name': 'Admin', 'role': 'admin',
                                  'department': 'Administration'},
        )
        return admin

    def create_doctors(self):
        doctors_data = [
            {'username': 'dr.sharma', 'first_name': 'Anil', 'last_name': 'Sharma',
             'specialization': 'Cardiology', 'department': 'Cardiology', 'fee': 800,
             'windows': [(time(9, 0), time(13, 0)), (time(14, 0), time(17, 0))]},
            {'username': 'dr.mehta', 'first_name': 'Priya', 'last_name': 'Mehta',
             'specialization': 'Pediatrics', 'department': 'Pediatrics', 'fee': 600,
             'windows': [(time(10, 0), time(16, 0))]},
            {'username': 'dr.khan', 'first_name': 'Imran', 'last_name': 'Khan',
             'specialization': 'General Medicine', 'department': 'General Medicine', 'fee': 500,
             'windows': [(time(9, 0), time(17, 0))]},
        ]
        doctors = []
        for data in doctors_data:
            user = self._user(data['username'], 'doctor', data['first_name'], data['last_name'])
            doctor, created = StaffMember.objects.get_or_create(
                user=user,
                defaults={
                    'first_name': data['first_name'], 'last_name': data['last_name'], 'role': 'doctor',
                    'specialization': data['specialization'], 'department': data['department'],
                    'consultation_fee': data['fee'], 'license_number': f"MED{random.randint(100000, 999999)}",
                    'experience_years': random.randint(3, 25), 'email': user.email,
                },
            )
            if created:
                # Monday to Saturday; Sunday off
                StaffSchedule.objects.bulk_create([
                    StaffSchedule(staff=doctor, day_of_week=day, start_time=start, end_time=end)
                    for day in range(1, 7) for start, end in data['windows']
                ])
            doctors.append(doctor)
        return doctors

    def create_support_staff(self):
        for username, role, first, last, dept in [
            ('nurse.rao', 'nurse', 'Lakshmi', 'Rao', 'General Ward'),
            ('reception.das', 'receptionist', 'Rohit', 'Das', 'Front Desk'),
            ('lab.iyer', 'lab_technician', 'Kavya', 'Iyer', 'Pathology'),
        ]:
            user = self._user(username, role, first, last)
            StaffMember.objects.get_or_create(
                user=user, defaults={'first_name': first, 'last_name': last, 'role': role,
                                     'department': dept, 'email': user.email},
            )

    def create_patients(self, count, admin):
        first_names = ['Aarav', 'Diya', 'Vihaan', 'Ananya', 'Arjun', 'Isha', 'Kabir', 'Meera', 'Rohan', 'Saanvi']
        last_names = ['Patel', 'Singh', 'Gupta', 'Nair', 'Reddy', 'Joshi', 'Kapoor', 'Bose']
        patients = []
        today = timezone.localdate()
        for i in range(count):
            patient = Patient.objects.create(
                first_name=random.choice(first_names),
                last_name=random.choice(last_names),
                date_of_birth=today - timedelta(days=random.randint(2, 80) * 365),
                gender=random.choice(['male', 'female']),
                phone=f"98{random.randint(10000000, 99999999)}",
                blood_group=random.choice(Patient.BLOOD_GROUPS),
                created_by=admin,
            )
            patients.append(patient)
        # one patient with a login
        user = self._user('patient.demo', 'patient', patients[0].first_name, patients[0].last_name)
        if not hasattr(user, 'patient_record'):
            patients[0].user = user
            patients[0].save(update_fields=['user'])
        self.stdout.write(f'  {len(patients)} patients')
        return patients

    def create_beds(self):
        layout = [('General Ward', 'general', 10), ('Private Wing', 'private', 4), ('ICU', 'icu', 4)]
        created = 0
        for ward, bed_type, count in layout:
            prefix = ward.split()[0][:3].upper()
            for n in range(1, count + 1):
                _, was_created = Bed.objects.get_or_create(
                    bed_number=f'{prefix}-{n:02d}',
                    defaults={'ward': ward, 'bed_type': bed_type, 'room_number': f'{prefix}{(n + 1) // 2}'},
                )
                created += int(was_created)
        self.stdout.write(f'  {created} beds')

    def create_vendors(self):
        vendors = []
        for name, contact in [('MedSupply Co', 'Ravi Kumar'), ('PharmaLink', 'Neha Shah')]:
            vendor = Vendor.objects.filter(name=name).first()
            if not vendor:
                vendor = Vendor.objects.create(name=name, contact_person=contact, phone='0221234567')
            vendors.append(vendor)
        return vendors

    def create_medicines(self, vendors):
        today = timezone.localdate()
        catalogue = [
            ('Paracetamol 500mg', 'Paracetamol', 'tablet', 500, '2.50'),
            ('Amoxicillin 250mg', 'Amoxicillin', 'capsule', 200, '8.00'),
            ('Cough Syrup', 'Dextromethorphan', 'syrup', 8, '95.00'),
            ('Insulin Glargine', 'Insulin', 'injection', 30, '650.00'),
            ('Salbutamol Inhaler', 'Salbutamol', 'inhaler', 5, '240.00'),
            ('Betadine Ointment', 'Povidone-iodine', 'ointment', 60, '75.00'),
        ]
        for name, generic, category, qty, price in catalogue:
            Medicine.objects.get_or_create(
                name=name,
                defaults={'generic_name': generic, 'category': category, 'quantity': qty, 'unit_price': price,
                          'expiry_date': today + timedelta(days=random.randint(15, 700)),
                          'vendor': random.choice(vendors), 'batch_number': f'B{random.randint(1000, 9999)}'},
            )

    def create_appointments(self, patients, doctors, admin):
        today = timezone.localdate()
        appointments = []
        for offset in range(-20, 10):
            on_date = today + timedelta(days=offset)
            if on_date.weekday() == 6:
                continue
            for doctor in doctors:
                hours = random.sample(range(10, 13), k=2)
                for hour in hours:
                    start = time(hour, random.choice([0, 30]))
                    if Appointment.objects.filter(doctor=doctor, date=on_date, start_time=start).exists():
                        continue
                    if offset < 0:
                        status = random.choice([Appointment.STATUS_COMPLETED] * 4 + [Appointment.STATUS_NO_SHOW])
                    else:
                        status = random.choice([Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED])
                    appointments.append(Appointment.objects.create(
                        patient=random.choice(patients),
                        doctor=doctor,
                        date=on_date,
                        start_time=start,
                        end_time=time(hour, start.minute + 30) if start.minute == 0 else time(hour + 1, 0),
                        duration=30,
                        status=status,
                        reason=random.choice(['Fever', 'Follow-up', 'Chest pain', 'Routine check-up', 'Cough']),
                        consultation_fee=doctor.consultation_fee,
                        follow_up_required=random.random() < 0.3,
                        created_by=admin,
                    ))
        self.stdout.write(f'  {len(appointments)} appointments')
        return appointments

    def create_visits(self, appointments, admin):
        diagnoses = ['Viral fever', 'Hypertension', 'Upper respiratory infection', 'Type 2 diabetes', 'Migraine']
        for a in appointments:
            if a.status != Appointment.STATUS_COMPLETED:
                continue
            Visit.objects.create(
                patient=a.patient, doctor=a.doctor, appointment=a, visit_type='opd', visit_date=a.date,
                chief_complaint=a.reason, diagnosis=random.choice(diagnoses), status='completed',
                created_by=admin,
            )

    def create_invoices(self, appointments, admin):
        consultation = next(s for s in COMMON_SERVICES if s['name'] == 'General Consultation')
        tests = [s for s in COMMON_SERVICES if s['category'] == 'test']
        count = 0
        for a in appointments:
            if a.status != Appointment.STATUS_COMPLETED:
                continue
            items = [{'description': consultation['name'], 'category': 'consultation',
                      'quantity': 1, 'unit_price': a.consultation_fee or consultation['price']}]
            if random.random() < 0.5:
                extra = random.choice(tests)
                items.append({'description': extra['name'], 'category': 'test', 'quantity': 1,
                              'unit_price': extra['price']})
            invoice = create_invoice(admin, patient_id=a.patient_id, doctor_id=a.doctor_id, items=items,
                                     invoice_date=a.date, tax_percentage=18)
            if random.random() < 0.7:
                record_payment(admin, invoice, amount=invoice.balance_amount,
                               payment_method=random.choice(['cash', 'card', 'upi']))
            count += 1
        self.stdout.write(f'  {count} invoices')
