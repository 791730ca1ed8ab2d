"""
AvailabilityCalculator — Cálculo puro de disponibilidade.

    available = total − Σ reservas ativas

Sem IO: barato o suficiente para rodar a cada mutação.
"""

from __future__ import annotations

from typing import Iterable

from .types import Availability, StockKey


def calculate_availability(
    key: StockKey,
    total_stock: int,
    active_quantities: Iterable[int],
    low_stock_threshold: int,
) -> Availability:
    """
    Calcula a disponibilidade de uma chave.

    Args:
        key: SKU + variante
        total_stock: Total do ledger
        active_quantities: Quantidades das reservas ativas da chave
        low_stock_threshold: Limite (inclusivo) para "estoque baixo"

    Returns:
        Availability com available/reserved e os flags usados pela UI
    """
    total = max(int(total_stock or 0), 0)
    reserved = sum(int(q) for q in active_quantities)
    # Nunca negativo, mesmo com o ledger ajustado fora do coordinator.
    available = max(total - reserved, 0)
    return Availability(
        sku=key.sku,
        variant=key.variant,
        total_stock=total,
        reserved_stock=reserved,
        available_stock=available,
        is_out_of_stock=available == 0,
        is_low=0 < available <= int(low_stock_threshold),
    )
