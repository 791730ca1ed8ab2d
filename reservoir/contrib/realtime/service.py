"""
Reservoir Realtime Service — Registro de backends e publicação.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from django.utils.module_loading import import_string

from reservoir.conf import get_setting
from reservoir.types import Availability, StockKey

from .protocols import Broadcaster

logger = logging.getLogger(__name__)

# Registry de backends
_lock = threading.RLock()
_backends: dict[str, Broadcaster] = {}


def register_backend(name: str, backend: Broadcaster) -> None:
    """
    Registra um backend de broadcast.

    Args:
        name: Nome do backend (ex: "local", "gateway")
        backend: Instância do backend
    """
    if not isinstance(backend, Broadcaster):
        raise TypeError(f"Expected Broadcaster protocol, got {type(backend)}")
    with _lock:
        _backends[name] = backend
    logger.debug(f"Broadcast backend registered: {name}")


def get_backend(name: str) -> Broadcaster | None:
    with _lock:
        return _backends.get(name)


def get_backends() -> dict[str, Broadcaster]:
    with _lock:
        return dict(_backends)


def clear_backends() -> None:
    """Limpa o registro. Útil para testes."""
    with _lock:
        _backends.clear()


def load_configured_backends() -> None:
    """
    Instancia e registra os backends de RESERVOIR["BROADCAST_BACKENDS"].

    Cada entrada: {"class": "dotted.path", **kwargs}. Nomes já registrados são mantidos.
    """
    config = get_setting("BROADCAST_BACKENDS") or {}
    for name, options in config.items():
        if get_backend(name) is not None:
            continue
        options = dict(options)
        backend_cls = import_string(options.pop("class"))
        register_backend(name, backend_cls(**options))


def get_local_broadcaster():
    """Retorna o primeiro LocalBroadcaster registrado (usado pelo stream SSE)."""
    from .backends.local import LocalBroadcaster

    for backend in get_backends().values():
        if isinstance(backend, LocalBroadcaster):
            return backend
    return None


def publish(*, channel: str, event: str, payload: dict[str, Any]) -> int:
    """
    Publica em todos os backends registrados.

    Falhas de um backend são logadas e não interrompem os demais.

    Returns:
        Número de backends que aceitaram o evento
    """
    delivered = 0
    for name, backend in get_backends().items():
        try:
            backend.publish(channel=channel, event=event, payload=payload)
            delivered += 1
        except Exception:
            logger.exception(f"Broadcast error: backend={name} channel={channel} event={event}")
    return delivered


def broadcast_availability(availability: Availability, *, reason: str) -> int:
    """Publica `stock_updated` no canal da chave."""
    key = StockKey.of(availability.sku, availability.variant)
    payload = {
        "sku": availability.sku,
        "variant": availability.variant or None,
        "available_stock": availability.available_stock,
        "reserved_stock": availability.reserved_stock,
        "is_low": availability.is_low,
        "is_out_of_stock": availability.is_out_of_stock,
        "reason": reason,
    }
    return publish(channel=key.channel, event="stock_updated", payload=payload)


def broadcast_reservation(reservation) -> int:
    """Publica `reservation_updated` no canal da chave da reserva."""
    payload = {
        "reservation_id": reservation.reservation_id,
        "sku": reservation.sku,
        "variant": reservation.variant or None,
        "status": reservation.status,
        "quantity": reservation.quantity,
    }
    return publish(channel=reservation.key.channel, event="reservation_updated", payload=payload)
