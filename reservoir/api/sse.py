"""
Push de disponibilidade em tempo real.

- SSE (text/event-stream): join no canal ao conectar, leave ao desconectar.
  Comentários de heartbeat mantêm proxies abertos; a conexão tem vida
  máxima e o EventSource do navegador reconecta sozinho.
- Polling: fallback para clientes sem SSE. Também é como o cliente se
  recupera de eventos perdidos (entrega at-most-once).
"""
from __future__ import annotations

import json
import time
from typing import Iterator

from django.http import JsonResponse, StreamingHttpResponse
from django.views.decorators.http import require_GET

from reservoir.conf import get_setting
from reservoir.contrib.realtime import INVENTORY_CHANNEL, get_local_broadcaster
from reservoir.contrib.realtime.backends.local import Subscription
from reservoir.exceptions import ReservoirError
from reservoir.services import ReservationCoordinator
from reservoir.types import StockKey

from .views import availability_payload


def format_sse(event: str, data: dict, event_id: int | None = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, default=str)}")
    return "\n".join(lines) + "\n\n"


def event_stream(
    subscription: Subscription,
    snapshot: dict | None,
    heartbeat: float,
    lifetime: float,
    clock=time.monotonic,
) -> Iterator[str]:
    """
    Gera o corpo SSE até a vida máxima da conexão.

    O leave acontece no `finally`: fim normal, desconexão do cliente
    (GeneratorExit) ou erro.
    """
    try:
        if snapshot is not None:
            yield format_sse("stock_updated", snapshot)
        deadline = clock() + lifetime
        while True:
            remaining = deadline - clock()
            if remaining <= 0:
                break
            event = subscription.get(timeout=min(heartbeat, remaining))
            if event is None:
                yield ": heartbeat\n\n"
                continue
            yield format_sse(event.event, event.payload, event_id=event.sequence)
        if subscription.dropped:
            yield format_sse("resync", {"dropped": subscription.dropped})
    finally:
        subscription.close()


def _stream_response(channel: str, snapshot: dict | None):
    hub = get_local_broadcaster()
    if hub is None:
        return JsonResponse(
            {"code": "stream_unavailable", "message": "Nenhum broadcaster local configurado", "context": {}},
            status=503,
        )

    subscription = hub.subscribe(channel)
    response = StreamingHttpResponse(
        event_stream(
            subscription,
            snapshot,
            heartbeat=float(get_setting("STREAM_HEARTBEAT_SECONDS")),
            lifetime=float(get_setting("STREAM_MAX_SECONDS")),
        ),
        content_type="text/event-stream",
    )
    response["Cache-Control"] = "no-cache"
    response["X-Accel-Buffering"] = "no"
    return response


def _current(sku: str, variant: str | None):
    availability = ReservationCoordinator().get_availability(sku, variant)
    payload = availability_payload(availability)
    payload.pop("total_stock", None)
    payload["reason"] = "snapshot"
    return payload


@require_GET
def stock_stream_view(request, sku):
    """
    SSE de um SKU: ?variant=X escolhe a variante.

    O primeiro evento é o snapshot atual; depois, um evento por mudança.
    """
    variant = request.GET.get("variant")
    try:
        snapshot = _current(sku, variant)
    except ReservoirError as e:
        return JsonResponse(e.as_dict(), status=e.http_status)
    return _stream_response(StockKey.of(sku, variant).channel, snapshot)


@require_GET
def inventory_stream_view(request):
    """SSE do canal global `inventory` (todos os SKUs)."""
    return _stream_response(INVENTORY_CHANNEL, None)


@require_GET
def stock_poll_view(request, sku):
    """Disponibilidade atual (polling a cada poucos segundos)."""
    try:
        payload = _current(sku, request.GET.get("variant"))
    except ReservoirError as e:
        return JsonResponse(e.as_dict(), status=e.http_status)
    return JsonResponse(payload)
