"""
Expiry Sweeper — Recupera capacidade de reservas abandonadas.

Cada ciclo:
1. Busca chaves com reservas ativas vencidas (expires_at < now)
2. Expira as reservas de cada chave pelo mesmo ponto de serialização do coordinator
3. Remove reservas terminais mais antigas que TERMINAL_RETENTION_HOURS

Confirm em andamento (confirming_since) só é expirado depois de
CONFIRM_GRACE_SECONDS: cobre o worker que caiu entre as fases do confirm.

Falha em uma chave é logada e não interrompe as demais; o próximo ciclo tenta de novo.
"""

from __future__ import annotations

import logging
import threading

from django.db.models import Q
from django.utils import timezone

from ..conf import confirm_grace, get_setting, terminal_retention
from ..models import Reservation
from ..types import StockKey, SweepResult
from .coordinator import ReservationCoordinator


logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Uso:
        ExpirySweeper().sweep()                       # um ciclo (cron, testes)
        ExpirySweeper().run_forever(interval=30)      # worker
    """

    def __init__(self, coordinator: ReservationCoordinator | None = None):
        self.coordinator = coordinator or ReservationCoordinator()

    def sweep(self, now=None, purge: bool = True) -> SweepResult:
        now = now or timezone.now()
        result = SweepResult()

        for sku, variant in self._overdue_keys(now):
            key = StockKey.of(sku, variant)
            try:
                expired = self.coordinator.expire_overdue(key.sku, key.variant, now=now)
            except Exception:
                logger.exception(f"Sweep failed for {key}")
                result.failed_keys.append(str(key))
                continue
            if expired:
                result.expired += expired
                result.keys.append(str(key))

        if purge:
            result.purged = self.purge(now)

        if result.expired or result.purged or result.failed_keys:
            logger.info(
                f"Sweep: {result.expired} expired, {result.purged} purged, "
                f"{len(result.failed_keys)} failed key(s)"
            )
        return result

    def purge(self, now=None) -> int:
        """Remove reservas terminais fora do período de retenção."""
        now = now or timezone.now()
        cutoff = now - terminal_retention()
        deleted, _ = Reservation.objects.terminal().filter(updated_at__lt=cutoff).delete()
        return deleted

    def run_forever(self, interval: float | None = None, stop_event: threading.Event | None = None) -> None:
        """
        Roda ciclos até `stop_event` ser sinalizado.

        Erros de um ciclo inteiro (banco fora do ar, por exemplo) são logados
        e o ciclo seguinte roda normalmente.
        """
        interval = float(interval or get_setting("SWEEP_INTERVAL_SECONDS"))
        stop_event = stop_event or threading.Event()
        logger.info(f"Sweeper started (interval={interval}s)")
        while not stop_event.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("Sweep cycle failed")
            stop_event.wait(interval)
        logger.info("Sweeper stopped")

    def _overdue_keys(self, now) -> list[tuple[str, str]]:
        grace_cutoff = now - confirm_grace()
        return list(
            Reservation.objects.active()
            .filter(expires_at__lt=now)
            .filter(Q(confirming_since__isnull=True) | Q(confirming_since__lt=grace_cutoff))
            .order_by()
            .values_list("sku", "variant")
            .distinct()
        )
