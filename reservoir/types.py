"""
Reservoir Types — Value objects compartilhados entre serviços, API e backends.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class StockKey:
    """
    Chave de serialização: SKU + variante (vazia quando o produto não tem variantes).

    Todas as mutações de uma mesma chave são totalmente ordenadas;
    chaves diferentes são independentes.
    """

    sku: str
    variant: str = ""

    @classmethod
    def of(cls, sku: str, variant: str | None = None) -> "StockKey":
        return cls(sku=str(sku).strip(), variant=str(variant or "").strip())

    @property
    def channel(self) -> str:
        """Nome do canal de broadcast (ex.: "stock:CAMISETA" ou "stock:CAMISETA:P")."""
        if self.variant:
            return f"stock:{self.sku}:{self.variant}"
        return f"stock:{self.sku}"

    def __str__(self) -> str:
        return f"{self.sku}:{self.variant}" if self.variant else self.sku


@dataclass(frozen=True)
class Availability:
    """Visão derivada de disponibilidade (nunca persistida)."""

    sku: str
    variant: str
    total_stock: int
    reserved_stock: int
    available_stock: int
    is_out_of_stock: bool
    is_low: bool

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class StockCheckItem:
    """Detalhe por item do check-stock."""

    sku: str
    variant: str
    requested_quantity: int
    available_stock: int
    reserved_stock: int
    available: bool
    message: str | None = None


@dataclass
class StockCheckResult:
    """Resultado agregado do check-stock (pré-flight, não reserva nada)."""

    satisfiable: bool
    details: list[StockCheckItem] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "satisfiable": self.satisfiable,
            "details": [asdict(d) for d in self.details],
        }


@dataclass
class ReleaseResult:
    """Resultado de um release (total ou parcial)."""

    reservation_id: str
    released_quantity: int
    remaining_quantity: int
    status: str


@dataclass
class SweepResult:
    """Resultado de um ciclo do sweeper."""

    expired: int = 0
    purged: int = 0
    keys: list[str] = field(default_factory=list)
    failed_keys: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)
