# clinic/management/commands/ensure_test_users.py
from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

from clinic.models import Patient, StaffMember, User

TEST_SET = [
    ("admin1", "admin"),
    ("doctor1", "doctor"),
    ("nurse1", "nurse"),
    ("reception1", "receptionist"),
    ("lab1", "lab_technician"),
    ("patient1", "patient"),
]
TEST_PASSWORD = "Hms@12345"


class Command(BaseCommand):
    help = "Ensure one login per role exists with the shared test password (idempotent)."

    def handle(self, *args, **opts):
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password(TEST_PASSWORD), "is_active": True,
                          "first_name": username.rstrip("1").title(), "last_name": "Test"},
            )
            if not created:
                # reset password, activation and role
                u.password = make_password(TEST_PASSWORD)
                u.role = role
                u.is_active = True
                u.must_change_password = False
                u.save(update_fields=["password", "role", "is_active", "must_change_password"])
            if role == "patient":
                Patient.objects.get_or_create(user=u, defaults={"first_name": u.first_name, "last_name": u.last_name})
            else:
                StaffMember.objects.get_or_create(
                    user=u,
                    defaults={"first_name": u.first_name, "last_name": u.last_name, "role": role,
                              "specialization": "General Medicine" if role == "doctor" else ""},
                )
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
