from __future__ import annotations

import threading

from django.core.management import BaseCommand
from django.utils import timezone

from reservoir.conf import get_setting
from reservoir.services import ExpirySweeper


class Command(BaseCommand):
    help = "Expira reservas vencidas e remove reservas terminais antigas."

    def add_arguments(self, parser):
        parser.add_argument(
            "--watch",
            action="store_true",
            help="Mantém o comando rodando em loop (worker simples).",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Intervalo (segundos) entre ciclos quando usado com --watch (default: SWEEP_INTERVAL_SECONDS).",
        )
        parser.add_argument(
            "--no-purge",
            action="store_true",
            help="Não remove reservas terminais fora do período de retenção.",
        )

    def handle(self, *args, **opts):
        watch = bool(opts.get("watch"))
        interval = max(float(opts.get("interval") or get_setting("SWEEP_INTERVAL_SECONDS")), 0.5)
        purge = not opts.get("no_purge")
        sweeper = ExpirySweeper()

        def _cycle():
            result = sweeper.sweep(now=timezone.now(), purge=purge)
            if result.expired:
                self.stdout.write(
                    self.style.SUCCESS(f"Reservas expiradas: {result.expired} ({', '.join(result.keys)})")
                )
            if result.purged:
                self.stdout.write(f"Reservas terminais removidas: {result.purged}")
            if result.failed_keys:
                self.stderr.write(self.style.ERROR(f"Chaves com erro: {', '.join(result.failed_keys)}"))
            return result

        # Single-run mode
        if not watch:
            result = _cycle()
            if not (result.expired or result.purged or result.failed_keys):
                self.stdout.write("Nada a fazer.")
            return

        # Watch mode
        self.stdout.write(self.style.WARNING("Sweeper iniciado: Ctrl+C para sair."))
        stop = threading.Event()
        try:
            while not stop.is_set():
                try:
                    _cycle()
                except Exception as exc:
                    self.stderr.write(self.style.ERROR(f"Erro no ciclo do sweeper: {exc}"))
                stop.wait(interval)
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING("Sweeper encerrado."))
