from django.core.management.base import BaseCommand
from django.utils import timezone

from clinic.realtime.events import broadcast_refresh
from clinic.services.analytics import KPI_CACHE_KEY, get_kpi_metrics


class Command(BaseCommand):
    help = "Warm the KPI cache and broadcast a WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        get_kpi_metrics(refresh=True)
        keys_refreshed = [KPI_CACHE_KEY]
        broadcast_refresh(['kpis', 'dashboard'])
        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))
