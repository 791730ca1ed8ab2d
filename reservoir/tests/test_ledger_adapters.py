"""
Tests for the ledger contrib (model and HTTP adapters).
"""

from __future__ import annotations

import json
from unittest import mock
from urllib.error import HTTPError, URLError

from django.test import TestCase, override_settings

from reservoir.contrib.ledger import LedgerBackend, get_ledger_backend
from reservoir.contrib.ledger.adapters.http import HttpLedgerBackend
from reservoir.contrib.ledger.adapters.model import ModelLedgerBackend
from reservoir.exceptions import InsufficientStock, LedgerUnavailable, ValidationError
from reservoir.models import StockMovement, StockRecord
from reservoir.types import StockKey


def _http_error(code: int) -> HTTPError:
    return HTTPError("http://catalog/api", code, "error", {}, None)


class ModelLedgerBackendTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.ledger = ModelLedgerBackend()
        self.key = StockKey.of("SKU-A", "P")
        StockRecord.objects.create(sku="SKU-A", variant="P", total_stock=5)

    def test_is_ledger_backend(self) -> None:
        self.assertIsInstance(self.ledger, LedgerBackend)

    def test_get_total_stock(self) -> None:
        self.assertEqual(self.ledger.get_total_stock(self.key), 5)
        self.assertIsNone(self.ledger.get_total_stock(StockKey.of("SKU-A")))

    def test_decrement_records_movement(self) -> None:
        self.ledger.decrement_stock(self.key, 2, reference="RSV-1")

        self.assertEqual(self.ledger.get_total_stock(self.key), 3)
        movement = StockMovement.objects.get(reference="RSV-1")
        self.assertEqual(movement.kind, StockMovement.Kind.CONFIRM)
        self.assertEqual(movement.delta, -2)
        self.assertEqual(movement.balance, 3)

    def test_decrement_is_idempotent_by_reference(self) -> None:
        self.ledger.decrement_stock(self.key, 2, reference="RSV-1")
        self.ledger.decrement_stock(self.key, 2, reference="RSV-1")

        self.assertEqual(self.ledger.get_total_stock(self.key), 3)
        self.assertEqual(StockMovement.objects.count(), 1)

    def test_decrement_beyond_total(self) -> None:
        with self.assertRaises(InsufficientStock) as ctx:
            self.ledger.decrement_stock(self.key, 6, reference="RSV-1")

        self.assertEqual(ctx.exception.code, "ledger_insufficient")
        self.assertEqual(self.ledger.get_total_stock(self.key), 5)

    def test_decrement_unknown_sku(self) -> None:
        with self.assertRaises(LedgerUnavailable):
            self.ledger.decrement_stock(StockKey.of("MISSING"), 1, reference="RSV-1")

    def test_restore_returns_an_applied_decrement_once(self) -> None:
        self.ledger.decrement_stock(self.key, 2, reference="RSV-1")

        self.ledger.restore_stock(self.key, 2, reference="RSV-1")
        self.ledger.restore_stock(self.key, 2, reference="RSV-1")

        self.assertEqual(self.ledger.get_total_stock(self.key), 5)
        restore = StockMovement.objects.get(kind=StockMovement.Kind.RESTORE)
        self.assertEqual(restore.reference, "RSV-1:restore")
        self.assertEqual(restore.delta, 2)

    def test_restore_without_decrement_is_a_no_op(self) -> None:
        self.ledger.restore_stock(self.key, 2, reference="RSV-NEVER")

        self.assertEqual(self.ledger.get_total_stock(self.key), 5)
        self.assertFalse(StockMovement.objects.exists())

    def test_set_total_stock_creates_and_adjusts(self) -> None:
        key = StockKey.of("SKU-NEW")

        self.ledger.set_total_stock(key, 10, reason="seed")
        self.ledger.set_total_stock(key, 7, reason="count")

        self.assertEqual(self.ledger.get_total_stock(key), 7)
        deltas = list(StockMovement.objects.filter(sku="SKU-NEW").order_by("id").values_list("delta", flat=True))
        self.assertEqual(deltas, [10, -3])

    def test_set_total_stock_rejects_negative(self) -> None:
        with self.assertRaises(ValidationError):
            self.ledger.set_total_stock(self.key, -1)


class HttpLedgerBackendTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.ledger = HttpLedgerBackend(base_url="http://catalog/api/", headers={"Authorization": "Token abc"})
        self.key = StockKey.of("SKU A", "P")

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_get_total_stock(self, urlopen) -> None:
        urlopen.return_value.__enter__.return_value.read.return_value = b'{"total_stock": 12}'

        self.assertEqual(self.ledger.get_total_stock(self.key), 12)

        request = urlopen.call_args[0][0]
        self.assertEqual(request.full_url, "http://catalog/api/stock/SKU%20A?variant=P")
        self.assertEqual(request.get_header("Authorization"), "Token abc")

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_negative_total_is_clamped(self, urlopen) -> None:
        urlopen.return_value.__enter__.return_value.read.return_value = b'{"total_stock": -3}'

        self.assertEqual(self.ledger.get_total_stock(self.key), 0)

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_unknown_sku_is_none(self, urlopen) -> None:
        urlopen.side_effect = _http_error(404)

        self.assertIsNone(self.ledger.get_total_stock(self.key))

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_read_failures_are_unavailable(self, urlopen) -> None:
        for error in (_http_error(500), URLError("refused"), TimeoutError("timed out")):
            urlopen.side_effect = error
            with self.assertRaises(LedgerUnavailable):
                self.ledger.get_total_stock(self.key)

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_decrement_sends_reference(self, urlopen) -> None:
        urlopen.return_value.__enter__.return_value.status = 204

        self.ledger.decrement_stock(self.key, 2, reference="RSV-1")

        request = urlopen.call_args[0][0]
        self.assertEqual(request.full_url, "http://catalog/api/stock/SKU%20A/decrement")
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.get_header("Idempotency-key"), "RSV-1")
        self.assertEqual(json.loads(request.data), {"variant": "P", "quantity": 2, "reference": "RSV-1"})

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_decrement_conflict_is_insufficient(self, urlopen) -> None:
        urlopen.side_effect = _http_error(409)

        with self.assertRaises(InsufficientStock) as ctx:
            self.ledger.decrement_stock(self.key, 2, reference="RSV-1")

        self.assertEqual(ctx.exception.code, "ledger_insufficient")

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_decrement_failure_is_unavailable(self, urlopen) -> None:
        urlopen.side_effect = _http_error(502)

        with self.assertRaises(LedgerUnavailable):
            self.ledger.decrement_stock(self.key, 2, reference="RSV-1")

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_restore_posts_with_own_idempotency_key(self, urlopen) -> None:
        urlopen.return_value.__enter__.return_value.status = 204

        self.ledger.restore_stock(self.key, 2, reference="RSV-1")

        request = urlopen.call_args[0][0]
        self.assertEqual(request.full_url, "http://catalog/api/stock/SKU%20A/restore")
        self.assertEqual(request.get_header("Idempotency-key"), "RSV-1:restore")

    @mock.patch("reservoir.contrib.ledger.adapters.http.urlopen")
    def test_restore_failure_is_unavailable(self, urlopen) -> None:
        urlopen.side_effect = URLError("refused")

        with self.assertRaises(LedgerUnavailable):
            self.ledger.restore_stock(self.key, 2, reference="RSV-1")


class GetLedgerBackendTests(TestCase):
    def test_default_is_model_ledger(self) -> None:
        self.assertIsInstance(get_ledger_backend(), ModelLedgerBackend)

    @override_settings(
        RESERVOIR={
            "LEDGER_BACKEND": "reservoir.contrib.ledger.adapters.http.HttpLedgerBackend",
            "LEDGER_OPTIONS": {"base_url": "http://catalog/api", "timeout": 3},
        }
    )
    def test_configured_backend_with_options(self) -> None:
        backend = get_ledger_backend()

        self.assertIsInstance(backend, HttpLedgerBackend)
        self.assertEqual(backend.timeout, 3)

    @override_settings(RESERVOIR={"LEDGER_BACKEND": "reservoir.types.StockKey", "LEDGER_OPTIONS": {"sku": "X"}})
    def test_rejects_non_ledger(self) -> None:
        with self.assertRaises(TypeError):
            get_ledger_backend()
