"""
Reservoir Model Ledger — Ledger local sobre StockRecord/StockMovement.

Backend padrão. Toda baixa e todo ajuste gera um StockMovement;
baixas são idempotentes por referência.
"""

from __future__ import annotations

import logging

from django.db import transaction

from reservoir.exceptions import InsufficientStock, LedgerUnavailable, ValidationError
from reservoir.models import StockMovement, StockRecord
from reservoir.types import StockKey

logger = logging.getLogger(__name__)


class ModelLedgerBackend:
    """
    Ledger persistido nos models do Reservoir.

    Uso:
        RESERVOIR = {
            "LEDGER_BACKEND": "reservoir.contrib.ledger.adapters.model.ModelLedgerBackend",
        }
    """

    def get_total_stock(self, key: StockKey) -> int | None:
        total = (
            StockRecord.objects.filter(sku=key.sku, variant=key.variant)
            .values_list("total_stock", flat=True)
            .first()
        )
        return total

    @transaction.atomic
    def decrement_stock(self, key: StockKey, quantity: int, reference: str) -> None:
        """
        Baixa `quantity` do total, registrando um StockMovement(kind=confirm).

        Raises:
            LedgerUnavailable: SKU ausente no ledger
            InsufficientStock: Total menor que a baixa (ledger inconsistente)
        """
        try:
            record = StockRecord.objects.select_for_update().get(sku=key.sku, variant=key.variant)
        except StockRecord.DoesNotExist:
            raise LedgerUnavailable(
                message=f"SKU ausente no ledger: {key}",
                context={"sku": key.sku, "variant": key.variant},
            ) from None

        # Checado com o lock da linha: baixas concorrentes da mesma referência serializam aqui
        if StockMovement.objects.filter(reference=reference).exists():
            logger.debug("decrement_stock: reference %s already applied, skipping.", reference)
            return

        if record.total_stock < quantity:
            raise InsufficientStock(
                code="ledger_insufficient",
                message=f"Ledger com {record.total_stock} unidade(s), baixa de {quantity} recusada",
                context={"sku": key.sku, "variant": key.variant, "total_stock": record.total_stock},
            )

        record.total_stock -= quantity
        record.save(update_fields=["total_stock", "updated_at"])
        StockMovement.objects.create(
            sku=key.sku,
            variant=key.variant,
            kind=StockMovement.Kind.CONFIRM,
            delta=-quantity,
            balance=record.total_stock,
            reference=reference,
        )
        logger.info("Ledger decremented: %s -%s (ref=%s, balance=%s)", key, quantity, reference, record.total_stock)

    @transaction.atomic
    def restore_stock(self, key: StockKey, quantity: int, reference: str) -> None:
        """Devolve uma baixa feita com `reference`. Só devolve uma vez."""
        restore_ref = f"{reference}:restore"
        try:
            record = StockRecord.objects.select_for_update().get(sku=key.sku, variant=key.variant)
        except StockRecord.DoesNotExist:
            raise LedgerUnavailable(
                message=f"SKU ausente no ledger: {key}",
                context={"sku": key.sku, "variant": key.variant},
            ) from None

        if not StockMovement.objects.filter(reference=reference).exists():
            logger.debug("restore_stock: reference %s was never applied, skipping.", reference)
            return
        if StockMovement.objects.filter(reference=restore_ref).exists():
            return

        record.total_stock += quantity
        record.save(update_fields=["total_stock", "updated_at"])
        StockMovement.objects.create(
            sku=key.sku,
            variant=key.variant,
            kind=StockMovement.Kind.RESTORE,
            delta=quantity,
            balance=record.total_stock,
            reference=restore_ref,
        )
        logger.info("Ledger restored: %s +%s (ref=%s, balance=%s)", key, quantity, reference, record.total_stock)

    @transaction.atomic
    def set_total_stock(self, key: StockKey, total: int, reason: str = "") -> int:
        """
        Define o total absoluto (ajuste administrativo). Cria o registro se não existir.

        Returns:
            Novo total
        """
        if total < 0:
            raise ValidationError(
                code="invalid_adjustment",
                message="Estoque total não pode ser negativo",
                context={"sku": key.sku, "variant": key.variant, "total": total},
            )
        record, _created = StockRecord.objects.select_for_update().get_or_create(
            sku=key.sku,
            variant=key.variant,
            defaults={"total_stock": 0},
        )
        delta = total - record.total_stock
        record.total_stock = total
        record.save(update_fields=["total_stock", "updated_at"])
        StockMovement.objects.create(
            sku=key.sku,
            variant=key.variant,
            kind=StockMovement.Kind.ADJUST,
            delta=delta,
            balance=total,
            reason=reason[:255],
        )
        return total
