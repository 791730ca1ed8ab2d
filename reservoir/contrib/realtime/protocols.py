"""
Reservoir Realtime Protocols — Interface para backends de broadcast.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from django.utils import timezone


INVENTORY_CHANNEL = "inventory"


@dataclass
class StockEvent:
    """Evento publicado num canal."""

    channel: str
    event: str
    payload: dict[str, Any]
    sequence: int = 0
    published_at: str = field(default_factory=lambda: timezone.now().isoformat())

    def as_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "event": self.event,
            "payload": self.payload,
            "sequence": self.sequence,
            "published_at": self.published_at,
        }


@runtime_checkable
class Broadcaster(Protocol):
    """
    Protocol para backends de broadcast.

    Entrega é best-effort e at-most-once: o backend não deve levantar
    exceção para falhas de entrega a um assinante; o cliente se recupera
    relendo a disponibilidade.
    """

    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        """
        Publica um evento.

        Args:
            channel: Canal (ex: "stock:CAMISETA:P")
            event: Nome do evento (ex: "stock_updated")
            payload: Dados do evento
        """
        ...
