from django.core.management.base import BaseCommand

from clinic.services.billing import refresh_overdue_statuses
from clinic.services.inventory import notify_expired_medicines


class Command(BaseCommand):
    help = "Daily housekeeping: flag overdue invoices and alert on expired medicines."

    def handle(self, *args, **options):
        overdue = refresh_overdue_statuses()
        expired = notify_expired_medicines()
        self.stdout.write(self.style.SUCCESS(
            f"{overdue} invoice(s) marked overdue, {expired} expired medicine alert(s) sent"
        ))
