from __future__ import annotations

from django.db import models
from django.db.models import Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from ..ids import generate_reservation_id
from ..types import StockKey


class ReservationKey(models.Model):
    """
    Linha de serialização por chave (SKU + variante).

    O coordinator e o sweeper travam esta linha (select_for_update) dentro da
    transação antes de ler ou escrever reservas da chave. Cobre processos
    diferentes (web workers, worker do sweeper).

    `ledger_version` muda a cada baixa confirmada ou ajuste do total: permite
    ler o ledger fora do lock e revalidar a leitura já com o lock.
    """

    sku = models.CharField(_("SKU"), max_length=64)
    variant = models.CharField(_("variante"), max_length=64, blank=True, default="")
    ledger_version = models.PositiveIntegerField(_("versão do ledger"), default=0)
    created_at = models.DateTimeField(_("criada em"), auto_now_add=True)

    class Meta:
        app_label = "reservoir"
        verbose_name = _("chave de reserva")
        verbose_name_plural = _("chaves de reserva")
        constraints = [
            models.UniqueConstraint(fields=["sku", "variant"], name="reservoir_reservationkey_unique_key"),
        ]

    def __str__(self) -> str:
        return str(StockKey.of(self.sku, self.variant))


class ReservationQuerySet(models.QuerySet):
    def for_key(self, key: StockKey) -> "ReservationQuerySet":
        return self.filter(sku=key.sku, variant=key.variant)

    def active(self) -> "ReservationQuerySet":
        return self.filter(status=Reservation.Status.ACTIVE)

    def terminal(self) -> "ReservationQuerySet":
        return self.filter(status__in=Reservation.TERMINAL_STATUSES)

    def reserved_quantity(self) -> int:
        return self.aggregate(total=Sum("quantity"))["total"] or 0


class Reservation(models.Model):
    """
    Reserva temporária (hold) contra o estoque disponível.

    Ciclo de vida:
    - active: segurando capacidade até expires_at
    - confirmed: convertida em baixa no ledger (checkout concluído)
    - released: liberada pelo cliente (remoção do carrinho)
    - expired: prazo vencido sem confirm/release (sweeper)

    Estados terminais são imutáveis e removidos depois do período de retenção.

    `confirming_since` marca um confirm em andamento (duas fases): a reserva
    continua ativa e contando na disponibilidade, mas o sweeper não a expira
    e release é recusado até o confirm terminar ou o prazo de graça vencer.
    """

    class Status(models.TextChoices):
        """Status da reserva."""
        ACTIVE = "active", _("ativa")
        CONFIRMED = "confirmed", _("confirmada")
        RELEASED = "released", _("liberada")
        EXPIRED = "expired", _("expirada")

    TERMINAL_STATUSES = [Status.CONFIRMED, Status.RELEASED, Status.EXPIRED]

    reservation_id = models.CharField(
        _("ID da reserva"), max_length=32, unique=True, default=generate_reservation_id, editable=False
    )
    sku = models.CharField(_("SKU"), max_length=64)
    variant = models.CharField(_("variante"), max_length=64, blank=True, default="")
    holder_id = models.CharField(_("titular"), max_length=128, db_index=True)

    quantity = models.PositiveIntegerField(_("quantidade"))
    original_quantity = models.PositiveIntegerField(_("quantidade original"))
    released_quantity = models.PositiveIntegerField(_("quantidade liberada"), default=0)

    status = models.CharField(
        _("status"),
        max_length=16,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
    )
    reference = models.CharField(_("referência"), max_length=128, blank=True, default="")

    created_at = models.DateTimeField(_("criada em"), default=timezone.now)
    expires_at = models.DateTimeField(_("expira em"), db_index=True)
    confirming_since = models.DateTimeField(_("confirmando desde"), null=True, blank=True)
    confirmed_at = models.DateTimeField(_("confirmada em"), null=True, blank=True)
    released_at = models.DateTimeField(_("liberada em"), null=True, blank=True)
    expired_at = models.DateTimeField(_("expirada em"), null=True, blank=True)
    updated_at = models.DateTimeField(_("atualizada em"), auto_now=True)

    objects = ReservationQuerySet.as_manager()

    class Meta:
        app_label = "reservoir"
        verbose_name = _("reserva")
        verbose_name_plural = _("reservas")
        ordering = ("created_at", "id")
        indexes = [
            models.Index(fields=["sku", "variant", "status"], name="reservoir_res_key_status"),
            models.Index(fields=["status", "expires_at"], name="reservoir_res_status_exp"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="reservoir_reservation_qty_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.reservation_id} ({self.key} x{self.quantity}, {self.status})"

    @property
    def key(self) -> StockKey:
        return StockKey.of(self.sku, self.variant)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def is_past_deadline(self, now=None) -> bool:
        now = now or timezone.now()
        return self.expires_at < now

    def mark_expired(self, now=None) -> None:
        self.status = self.Status.EXPIRED
        self.expired_at = now or timezone.now()
        self.confirming_since = None
        self.save(update_fields=["status", "expired_at", "confirming_since", "updated_at"])

    def as_dict(self) -> dict:
        return {
            "reservation_id": self.reservation_id,
            "sku": self.sku,
            "variant": self.variant,
            "holder_id": self.holder_id,
            "quantity": self.quantity,
            "original_quantity": self.original_quantity,
            "released_quantity": self.released_quantity,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
        }
