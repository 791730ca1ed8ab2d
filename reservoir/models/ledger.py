from __future__ import annotations

from django.db import models
from django.utils.translation import gettext_lazy as _

from ..types import StockKey


class StockRecord(models.Model):
    """
    Entrada do ledger: total físico por SKU (+ variante).

    Fonte única de verdade do total. Só é alterada por confirm
    (baixa) ou ajuste administrativo, sempre via ReservationCoordinator.
    """

    sku = models.CharField(_("SKU"), max_length=64)
    variant = models.CharField(_("variante"), max_length=64, blank=True, default="")
    total_stock = models.PositiveIntegerField(_("estoque total"), default=0)
    updated_at = models.DateTimeField(_("atualizado em"), auto_now=True)

    class Meta:
        app_label = "reservoir"
        verbose_name = _("registro de estoque")
        verbose_name_plural = _("registros de estoque")
        constraints = [
            models.UniqueConstraint(fields=["sku", "variant"], name="reservoir_stockrecord_unique_key"),
        ]
        ordering = ("sku", "variant")

    def __str__(self) -> str:
        return f"{self.key} = {self.total_stock}"

    @property
    def key(self) -> StockKey:
        return StockKey.of(self.sku, self.variant)


class StockMovement(models.Model):
    """
    Movimento do ledger (append-only): baixa por confirm, ajuste administrativo
    ou devolução de uma baixa cuja reserva expirou no meio do confirm.

    `reference` é única quando presente: uma baixa com a mesma referência
    (ex.: reservation_id) é aplicada uma única vez.
    """

    class Kind(models.TextChoices):
        CONFIRM = "confirm", _("baixa por confirmação")
        ADJUST = "adjust", _("ajuste")
        RESTORE = "restore", _("devolução de baixa")

    sku = models.CharField(_("SKU"), max_length=64)
    variant = models.CharField(_("variante"), max_length=64, blank=True, default="")
    kind = models.CharField(_("tipo"), max_length=16, choices=Kind.choices)
    delta = models.IntegerField(_("delta"))
    balance = models.PositiveIntegerField(_("saldo após"))
    reference = models.CharField(_("referência"), max_length=128, null=True, blank=True, unique=True)
    reason = models.CharField(_("motivo"), max_length=255, blank=True, default="")
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    class Meta:
        app_label = "reservoir"
        verbose_name = _("movimento de estoque")
        verbose_name_plural = _("movimentos de estoque")
        ordering = ("-created_at", "-id")

    def __str__(self) -> str:
        return f"{StockKey.of(self.sku, self.variant)} {self.delta:+d} ({self.kind})"
