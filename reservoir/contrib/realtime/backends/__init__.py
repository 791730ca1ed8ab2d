"""
Broadcast Backends — Implementações prontas para uso.

- LocalBroadcaster: hub em memória (join/leave por canal), alimenta o stream SSE
- WebhookBroadcaster: HTTP POST para um gateway de sockets
- ConsoleBroadcaster: Log no console (dev)
"""

from .console import ConsoleBroadcaster
from .local import LocalBroadcaster, Subscription
from .webhook import WebhookBroadcaster

__all__ = [
    "ConsoleBroadcaster",
    "LocalBroadcaster",
    "Subscription",
    "WebhookBroadcaster",
]
