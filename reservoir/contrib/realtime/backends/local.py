"""
Local Backend — Hub pub/sub em memória do processo.

Cada assinante tem uma fila limitada; se a fila enche, o evento é
descartado para aquele assinante (at-most-once, nunca bloqueia quem publica).
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from typing import Any

from reservoir.conf import get_setting
from reservoir.contrib.realtime.protocols import INVENTORY_CHANNEL, StockEvent

logger = logging.getLogger(__name__)


class Subscription:
    """
    Assinatura de um canal (join). `close()` faz o leave.

    Uso:
        with hub.subscribe("stock:CAMISETA") as sub:
            event = sub.get(timeout=15)
    """

    def __init__(self, hub: "LocalBroadcaster", channel: str, maxsize: int):
        self.hub = hub
        self.channel = channel
        self.dropped = 0
        self.closed = False
        self._queue: queue.Queue[StockEvent] = queue.Queue(maxsize=maxsize)

    def offer(self, event: StockEvent) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout: float | None = None) -> StockEvent | None:
        """Próximo evento ou None se nada chegar dentro do timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[StockEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.hub._leave(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LocalBroadcaster:
    """
    Backend de broadcast em memória.

    Eventos publicados em um canal vão para os assinantes do canal e
    para os assinantes do canal global `inventory`.

    Args:
        queue_size: Tamanho da fila por assinante (default: RESERVOIR["SUBSCRIBER_QUEUE_SIZE"])
    """

    def __init__(self, queue_size: int | None = None):
        self.queue_size = int(queue_size or get_setting("SUBSCRIBER_QUEUE_SIZE"))
        self._lock = threading.Lock()
        self._channels: dict[str, set[Subscription]] = {}
        self._sequence = itertools.count(1)

    def subscribe(self, channel: str) -> Subscription:
        subscription = Subscription(self, channel, self.queue_size)
        with self._lock:
            self._channels.setdefault(channel, set()).add(subscription)
        logger.debug("LocalBroadcaster: join %s", channel)
        return subscription

    def _leave(self, subscription: Subscription) -> None:
        with self._lock:
            members = self._channels.get(subscription.channel)
            if members is not None:
                members.discard(subscription)
                if not members:
                    del self._channels[subscription.channel]
        logger.debug("LocalBroadcaster: leave %s", subscription.channel)

    def subscriber_count(self, channel: str | None = None) -> int:
        with self._lock:
            if channel is not None:
                return len(self._channels.get(channel, ()))
            return sum(len(members) for members in self._channels.values())

    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        stock_event = StockEvent(channel=channel, event=event, payload=payload, sequence=next(self._sequence))
        with self._lock:
            targets = list(self._channels.get(channel, ()))
            if channel != INVENTORY_CHANNEL:
                targets.extend(self._channels.get(INVENTORY_CHANNEL, ()))

        for subscription in targets:
            if not subscription.offer(stock_event):
                logger.debug("LocalBroadcaster: queue full, dropped %s for %s", event, subscription.channel)
