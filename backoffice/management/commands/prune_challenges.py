from django.core.management.base import BaseCommand
from django.utils import timezone

from backoffice.services.claiming import prune_challenges


class Command(BaseCommand):
    help = "Delete consumed and expired patient claiming challenges."

    def handle(self, *args, **options):
        now = timezone.now()
        deleted = prune_challenges(now)
        self.stdout.write(self.style.SUCCESS(f"Pruned {deleted} challenges at {now}"))
