"""
Tests for reservoir.exceptions module.
"""

from __future__ import annotations

from django.test import TestCase

from reservoir.exceptions import (
    AlreadyTerminal,
    IdempotencyCacheHit,
    IdempotencyError,
    InsufficientStock,
    LedgerUnavailable,
    ReservationExpired,
    ReservationNotFound,
    ReservoirError,
    ValidationError,
)


class ReservoirErrorTests(TestCase):
    """Tests for base ReservoirError."""

    def test_reservoir_error_is_exception(self) -> None:
        error = ReservoirError("test")
        self.assertIsInstance(error, Exception)

    def test_as_dict(self) -> None:
        error = ValidationError(code="invalid_qty", message="bad", context={"quantity": 0})
        self.assertEqual(
            error.as_dict(),
            {"code": "invalid_qty", "message": "bad", "context": {"quantity": 0}},
        )

    def test_default_context(self) -> None:
        error = ValidationError(code="test", message="test")
        self.assertEqual(error.context, {})


class HttpStatusTests(TestCase):
    """Each error maps to the status code the API answers with."""

    def test_status_codes(self) -> None:
        self.assertEqual(ValidationError().http_status, 400)
        self.assertEqual(InsufficientStock().http_status, 409)
        self.assertEqual(ReservationNotFound().http_status, 404)
        self.assertEqual(AlreadyTerminal(code="released").http_status, 410)
        self.assertEqual(ReservationExpired().http_status, 410)
        self.assertEqual(LedgerUnavailable().http_status, 503)
        self.assertEqual(IdempotencyError(code="in_progress").http_status, 409)

    def test_confirm_in_progress_is_conflict(self) -> None:
        self.assertEqual(AlreadyTerminal(code="confirm_in_progress").http_status, 409)
        # Instance override does not leak into the class
        self.assertEqual(AlreadyTerminal.http_status, 410)

    def test_default_codes(self) -> None:
        self.assertEqual(InsufficientStock().code, "insufficient_stock")
        self.assertEqual(ReservationNotFound().code, "not_found")
        self.assertEqual(ReservationExpired().code, "expired")
        self.assertEqual(LedgerUnavailable().code, "ledger_unavailable")


class IdempotencyCacheHitTests(TestCase):
    def test_carries_cached_response(self) -> None:
        hit = IdempotencyCacheHit({"reservation_id": "RSV-1"}, 201)
        self.assertEqual(hit.cached_response, {"reservation_id": "RSV-1"})
        self.assertEqual(hit.response_code, 201)
        self.assertEqual(hit.code, "cache_hit")
