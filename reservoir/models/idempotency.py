from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class IdempotencyKeyQuerySet(models.QuerySet):
    def purgeable(self, now, settled_before) -> "IdempotencyKeyQuerySet":
        """Vencidas (inclui in_progress órfãs) ou encerradas antes de `settled_before`."""
        settled = [IdempotencyKey.Status.DONE, IdempotencyKey.Status.FAILED]
        return self.filter(Q(expires_at__lt=now) | Q(created_at__lt=settled_before, status__in=settled))

    def count_by_operation(self) -> dict[str, int]:
        rows = self.order_by().values_list("operation").annotate(n=models.Count("id"))
        return dict(rows)


class IdempotencyKey(models.Model):
    """
    Chave de idempotência de reserve, release ou confirm.

    O escopo amarra a chave ao alvo da operação: `reserve:<titular>`,
    `release:<reservation_id>` ou `confirm:<reservation_id>`. A mesma chave
    do cliente em escopos diferentes são registros independentes.

    Uma chave `done` guarda a resposta para replay; `failed` libera nova
    tentativa; `in_progress` vencida é tratada como órfã (worker caiu).
    """

    class Status(models.TextChoices):
        IN_PROGRESS = "in_progress", _("em andamento")
        DONE = "done", _("concluído")
        FAILED = "failed", _("falhou")

    class Operation(models.TextChoices):
        RESERVE = "reserve", _("reserva")
        RELEASE = "release", _("liberação")
        CONFIRM = "confirm", _("confirmação")
        OTHER = "other", _("outra")

    scope = models.CharField(_("escopo"), max_length=64)
    key = models.CharField(_("chave"), max_length=128)
    operation = models.CharField(
        _("operação"),
        max_length=16,
        choices=Operation.choices,
        default=Operation.OTHER,
        editable=False,
    )
    status = models.CharField(_("status"), max_length=16, choices=Status.choices, default=Status.IN_PROGRESS)

    response_code = models.IntegerField(_("código de resposta"), null=True, blank=True)
    response_body = models.JSONField(_("corpo da resposta"), null=True, blank=True)

    expires_at = models.DateTimeField(_("expira em"), null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(_("criado em"), auto_now_add=True)

    objects = IdempotencyKeyQuerySet.as_manager()

    class Meta:
        app_label = "reservoir"
        verbose_name = _("chave de idempotência")
        verbose_name_plural = _("chaves de idempotência")
        constraints = [
            models.UniqueConstraint(fields=["scope", "key"], name="reservoir_idempotency_scope_key"),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="reservoir_idem_status_created"),
        ]
        ordering = ("-created_at", "-id")

    def __str__(self) -> str:
        return f"{self.scope}:{self.key}"

    def save(self, *args, **kwargs):
        self.operation = self.operation_of(self.scope)
        super().save(*args, **kwargs)

    @classmethod
    def operation_of(cls, scope: str) -> str:
        prefix = (scope or "").split(":", 1)[0]
        return prefix if prefix in cls.Operation.values else cls.Operation.OTHER

    @property
    def subject(self) -> str:
        """Titular (reserve) ou reservation_id (release/confirm)."""
        return self.scope.split(":", 1)[1] if ":" in self.scope else ""

    @property
    def can_replay(self) -> bool:
        return self.status == self.Status.DONE and self.response_body is not None

    def is_orphaned(self, now=None) -> bool:
        now = now or timezone.now()
        return self.status == self.Status.IN_PROGRESS and self.expires_at is not None and self.expires_at <= now
