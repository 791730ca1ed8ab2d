"""
Reservoir Ledger Protocols — Interface para o ledger de estoque.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from reservoir.types import StockKey


@runtime_checkable
class LedgerBackend(Protocol):
    """
    Protocol para o ledger (colaborador de catálogo).

    O Reservoir só lê o total e dá baixa no confirm. Opcionais:
    `set_total_stock` (ajuste administrativo) e `restore_stock` (devolve
    uma baixa cuja reserva expirou durante o confirm).
    """

    def get_total_stock(self, key: StockKey) -> int | None:
        """
        Retorna o total físico da chave.

        Args:
            key: SKU + variante

        Returns:
            Total (>= 0) ou None se o SKU não existe no ledger

        Raises:
            LedgerUnavailable: Falha transitória de acesso
        """
        ...

    def decrement_stock(self, key: StockKey, quantity: int, reference: str) -> None:
        """
        Dá baixa de `quantity` unidades.

        Deve ser idempotente por `reference` (reservation_id): repetir a
        mesma baixa não baixa duas vezes.

        Raises:
            LedgerUnavailable: Falha transitória; nada foi baixado
        """
        ...
