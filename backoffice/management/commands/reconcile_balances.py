from django.core.management.base import BaseCommand
from django.utils import timezone

from backoffice.services.billing import reconcile_all


class Command(BaseCommand):
    help = "Recompute treatment and patient balances from recorded payments."

    def handle(self, *args, **options):
        now = timezone.now()
        count = reconcile_all()
        self.stdout.write(self.style.SUCCESS(f"Reconciled {count} patients at {now}"))
