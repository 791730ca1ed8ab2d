"""
HTTP Ledger — Ledger no serviço de catálogo externo.

Contrato esperado do serviço:
    GET  {base_url}/stock/{sku}?variant=V          -> 200 {"total_stock": 12} | 404
    POST {base_url}/stock/{sku}/decrement          -> 2xx | 409 (sem saldo)
         body: {"variant": "V", "quantity": 2, "reference": "RSV-..."}
         header: Idempotency-Key: RSV-...
    POST {base_url}/stock/{sku}/restore            -> 2xx (devolve a baixa da referência)
"""

from __future__ import annotations

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from reservoir.exceptions import InsufficientStock, LedgerUnavailable
from reservoir.types import StockKey

logger = logging.getLogger(__name__)


class HttpLedgerBackend:
    """
    Backend que consulta e baixa estoque via HTTP.

    Args:
        base_url: URL base do serviço de catálogo
        headers: Headers adicionais (ex: Authorization)
        timeout: Timeout em segundos (default: 5)

    Example:
        RESERVOIR = {
            "LEDGER_BACKEND": "reservoir.contrib.ledger.adapters.http.HttpLedgerBackend",
            "LEDGER_OPTIONS": {"base_url": "http://catalog:8000/api", "timeout": 3},
        }
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: int = 5,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout

    def get_total_stock(self, key: StockKey) -> int | None:
        url = f"{self.base_url}/stock/{quote(key.sku, safe='')}"
        if key.variant:
            url += "?" + urlencode({"variant": key.variant})
        request = Request(url, headers={"Accept": "application/json", **self.headers}, method="GET")

        try:
            with urlopen(request, timeout=self.timeout) as response:
                body = json.loads(response.read().decode("utf-8") or "{}")
        except HTTPError as e:
            if e.code == 404:
                return None
            logger.error(f"Ledger HTTP error on read: {e.code} {e.reason}")
            raise LedgerUnavailable(message=f"HTTP {e.code}: {e.reason}", context={"sku": key.sku}) from e
        except (URLError, TimeoutError) as e:
            logger.error(f"Ledger URL error on read: {getattr(e, 'reason', e)}")
            raise LedgerUnavailable(message=str(getattr(e, "reason", e)), context={"sku": key.sku}) from e

        return max(int(body.get("total_stock", 0)), 0)

    def decrement_stock(self, key: StockKey, quantity: int, reference: str) -> None:
        url = f"{self.base_url}/stock/{quote(key.sku, safe='')}/decrement"
        payload = {"variant": key.variant, "quantity": quantity, "reference": reference}
        request = Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Idempotency-Key": reference,
                **self.headers,
            },
            method="POST",
        )

        try:
            with urlopen(request, timeout=self.timeout) as response:
                logger.debug(f"Ledger decrement sent: {key} -{quantity} (status={response.status})")
        except HTTPError as e:
            if e.code == 409:
                raise InsufficientStock(
                    code="ledger_insufficient",
                    message="Ledger recusou a baixa por falta de saldo",
                    context={"sku": key.sku, "variant": key.variant, "reference": reference},
                ) from e
            logger.error(f"Ledger HTTP error on decrement: {e.code} {e.reason}")
            raise LedgerUnavailable(
                message=f"HTTP {e.code}: {e.reason}",
                context={"sku": key.sku, "reference": reference},
            ) from e
        except (URLError, TimeoutError) as e:
            logger.error(f"Ledger URL error on decrement: {getattr(e, 'reason', e)}")
            raise LedgerUnavailable(
                message=str(getattr(e, "reason", e)),
                context={"sku": key.sku, "reference": reference},
            ) from e

    def restore_stock(self, key: StockKey, quantity: int, reference: str) -> None:
        """Devolve uma baixa (POST .../restore); o serviço deduplica pela referência."""
        url = f"{self.base_url}/stock/{quote(key.sku, safe='')}/restore"
        payload = {"variant": key.variant, "quantity": quantity, "reference": reference}
        request = Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Idempotency-Key": f"{reference}:restore",
                **self.headers,
            },
            method="POST",
        )

        try:
            with urlopen(request, timeout=self.timeout) as response:
                logger.debug(f"Ledger restore sent: {key} +{quantity} (status={response.status})")
        except HTTPError as e:
            logger.error(f"Ledger HTTP error on restore: {e.code} {e.reason}")
            raise LedgerUnavailable(
                message=f"HTTP {e.code}: {e.reason}",
                context={"sku": key.sku, "reference": reference},
            ) from e
        except (URLError, TimeoutError) as e:
            logger.error(f"Ledger URL error on restore: {getattr(e, 'reason', e)}")
            raise LedgerUnavailable(
                message=str(getattr(e, "reason", e)),
                context={"sku": key.sku, "reference": reference},
            ) from e
