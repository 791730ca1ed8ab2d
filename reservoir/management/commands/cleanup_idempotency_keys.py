"""
Management command para limpar IdempotencyKeys de reserve/release/confirm.

Uso:
    python manage.py cleanup_idempotency_keys
    python manage.py cleanup_idempotency_keys --days 2
    python manage.py cleanup_idempotency_keys --dry-run

Recomendação: Agendar via cron junto com sweep_reservations.
"""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from reservoir.models import IdempotencyKey


class Command(BaseCommand):
    help = "Remove IdempotencyKeys expiradas ou antigas"

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=7,
            help="Remove keys done/failed mais antigas que N dias (default: 7)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Mostra o que seria removido sem remover",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        cutoff = now - timedelta(days=options["days"])

        qs = IdempotencyKey.objects.purgeable(now, settled_before=cutoff)
        by_operation = qs.count_by_operation()
        total = sum(by_operation.values())

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING(f"[DRY RUN] Seriam removidas {total} keys:"))
            for operation, count in sorted(by_operation.items()):
                self.stdout.write(f"  - {operation}: {count}")
            return

        deleted, _ = qs.delete()
        self.stdout.write(self.style.SUCCESS(f"Total removido: {deleted} IdempotencyKeys"))
