"""
Reservoir Realtime — Push de disponibilidade por canal de SKU.

Uso básico:
    from reservoir.contrib.realtime import get_local_broadcaster

    hub = get_local_broadcaster()
    with hub.subscribe("stock:CAMISETA") as subscription:   # join
        event = subscription.get(timeout=15)
    # leave ao sair do bloco

Canais:
    - stock:<sku> / stock:<sku>:<variant>: eventos de uma chave
    - inventory: recebe todos os eventos (painéis de estoque)

Eventos:
    - stock_updated {sku, variant, available_stock, reserved_stock, is_low, is_out_of_stock, reason}
    - reservation_updated {reservation_id, sku, variant, status, quantity}

Configuração via settings.py:
    RESERVOIR = {
        "BROADCAST_BACKENDS": {
            "local": {"class": "reservoir.contrib.realtime.backends.LocalBroadcaster"},
            "gateway": {
                "class": "reservoir.contrib.realtime.backends.WebhookBroadcaster",
                "url": "http://socket-gateway:3000/emit",
            },
        },
    }
"""

from .protocols import INVENTORY_CHANNEL, Broadcaster, StockEvent
from .service import (
    broadcast_availability,
    broadcast_reservation,
    get_backend,
    get_local_broadcaster,
    publish,
    register_backend,
)

__all__ = [
    "INVENTORY_CHANNEL",
    "Broadcaster",
    "StockEvent",
    "broadcast_availability",
    "broadcast_reservation",
    "get_backend",
    "get_local_broadcaster",
    "publish",
    "register_backend",
]
