"""
Webhook Backend — HTTP POST para um gateway de tempo real.

Conecta o Reservoir a qualquer transporte externo (gateway Socket.IO,
servidor de SSE, fila), que faz o fan-out para os navegadores.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)


class WebhookBroadcaster:
    """
    Backend que envia eventos via HTTP POST.

    Corpo enviado: {"channel": "...", "event": "...", "payload": {...}}

    Args:
        url: URL do gateway
        headers: Headers adicionais (ex: Authorization)
        timeout: Timeout em segundos (default: 2)

    Example:
        backend = WebhookBroadcaster(
            url="http://socket-gateway:3000/emit",
            headers={"X-Api-Key": "secret"},
        )
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: int = 2,
    ):
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        body = {"channel": channel, "event": event, "payload": payload}

        try:
            request = Request(
                self.url,
                data=json.dumps(body, default=str).encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    **self.headers,
                },
                method="POST",
            )

            with urlopen(request, timeout=self.timeout) as response:
                logger.debug(f"Broadcast webhook sent: {event} -> {self.url} (status={response.status})")

        except HTTPError as e:
            logger.error(f"Broadcast webhook HTTP error: {e.code} {e.reason}")

        except URLError as e:
            logger.error(f"Broadcast webhook URL error: {e.reason}")

        except Exception:
            logger.exception("Broadcast webhook unexpected error")
