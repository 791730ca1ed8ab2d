"""
Tests for the REST API (reservations, availability, health).
"""

from __future__ import annotations

from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from reservoir import __version__
from reservoir.exceptions import LedgerUnavailable
from reservoir.models import Reservation, ReservationKey, StockRecord
from reservoir.services import ReservationCoordinator

User = get_user_model()


def _hold(holder_id: str, quantity: int = 1) -> Reservation:
    return ReservationCoordinator(broadcast=False).reserve("SKU-A", quantity=quantity, holder_id=holder_id)


class ReservationApiTestCase(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.client = APIClient()
        StockRecord.objects.create(sku="SKU-A", total_stock=5)
        StockRecord.objects.create(sku="SHIRT", variant="P", total_stock=2)

    def _reserve(self, **data):
        payload = {"sku": "SKU-A", "quantity": 1}
        payload.update(data)
        return self.client.post("/api/reservations/reserve", payload, format="json")


class ReserveEndpointTests(ReservationApiTestCase):
    def test_reserve_returns_reservation_and_availability(self) -> None:
        response = self._reserve(quantity=3)

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertTrue(data["reservation_id"].startswith("RSV-"))
        self.assertEqual(data["status"], "active")
        self.assertEqual(data["quantity"], 3)
        self.assertEqual(data["available_stock"], 2)
        self.assertEqual(data["reserved_stock"], 3)
        self.assertIsNone(data["variant"])
        self.assertIn("expires_at", data)

    def test_insufficient_stock_is_conflict(self) -> None:
        self._reserve(quantity=3)

        response = APIClient().post("/api/reservations/reserve", {"sku": "SKU-A", "quantity": 3}, format="json")

        self.assertEqual(response.status_code, 409)
        data = response.json()
        self.assertEqual(data["code"], "insufficient_stock")
        self.assertEqual(data["context"]["available_stock"], 2)

    def test_invalid_quantity(self) -> None:
        response = self._reserve(quantity=0)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_qty")

    def test_invalid_ttl(self) -> None:
        response = self._reserve(ttl_seconds=0)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_ttl")

    def test_missing_sku(self) -> None:
        response = self.client.post("/api/reservations/reserve", {"quantity": 1}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_request")
        self.assertIn("sku", response.json()["context"]["errors"])

    def test_reserve_variant(self) -> None:
        response = self._reserve(sku="SHIRT", variant="P", quantity=2)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["variant"], "P")
        self.assertTrue(response.json()["is_out_of_stock"])

    def test_holder_defaults_to_session(self) -> None:
        response = self.client.post("/api/reservations/reserve", {"sku": "SKU-A", "quantity": 1}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["holder_id"].startswith("session:"))

    def test_holder_defaults_to_authenticated_user(self) -> None:
        user = User.objects.create_user(username="buyer", password="x")
        self.client.force_authenticate(user)

        response = self.client.post("/api/reservations/reserve", {"sku": "SKU-A", "quantity": 1}, format="json")

        self.assertEqual(response.json()["holder_id"], f"user:{user.pk}")

    def test_client_holder_is_ignored_for_shoppers(self) -> None:
        response = self._reserve(holder_id="user:99")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["holder_id"].startswith("session:"))

    def test_staff_may_reserve_for_another_holder(self) -> None:
        staff = User.objects.create_user(username="staff", password="x", is_staff=True)
        self.client.force_authenticate(staff)

        response = self._reserve(holder_id="user:99")

        self.assertEqual(response.json()["holder_id"], "user:99")

    def test_idempotent_reserve(self) -> None:
        first = self._reserve(quantity=2, idempotency_key="ADD-1")
        second = self._reserve(quantity=2, idempotency_key="ADD-1")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(first.json()["reservation_id"], second.json()["reservation_id"])
        self.assertEqual(Reservation.objects.count(), 1)


class ReleaseEndpointTests(ReservationApiTestCase):
    def test_partial_then_full_release(self) -> None:
        reservation_id = self._reserve(quantity=4).json()["reservation_id"]

        partial = self.client.post(
            "/api/reservations/release", {"reservation_id": reservation_id, "quantity": 2}, format="json"
        )
        self.assertEqual(partial.status_code, 200)
        self.assertEqual(
            partial.json(),
            {
                "reservation_id": reservation_id,
                "released_quantity": 2,
                "remaining_quantity": 2,
                "status": "active",
            },
        )

        full = self.client.post("/api/reservations/release", {"reservation_id": reservation_id}, format="json")
        self.assertEqual(full.json()["status"], "released")

        again = self.client.post("/api/reservations/release", {"reservation_id": reservation_id}, format="json")
        self.assertEqual(again.status_code, 410)
        self.assertEqual(again.json()["code"], "released")

    def test_stranger_cannot_release(self) -> None:
        reservation = _hold("user:1", quantity=2)

        response = APIClient().post(
            "/api/reservations/release", {"reservation_id": reservation.reservation_id}, format="json"
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, "active")

    def test_stranger_cannot_replay_owner_release(self) -> None:
        owner = User.objects.create_user(username="owner", password="x")
        self.client.force_authenticate(owner)
        reservation_id = self._reserve(quantity=2).json()["reservation_id"]
        payload = {"reservation_id": reservation_id, "quantity": 1, "idempotency_key": "REL-1"}
        self.assertEqual(self.client.post("/api/reservations/release", payload, format="json").status_code, 200)

        response = APIClient().post("/api/reservations/release", payload, format="json")

        self.assertEqual(response.status_code, 404)

    def test_staff_can_release_any_reservation(self) -> None:
        reservation = _hold("user:1")
        staff = User.objects.create_user(username="staff", password="x", is_staff=True)
        self.client.force_authenticate(staff)

        response = self.client.post(
            "/api/reservations/release", {"reservation_id": reservation.reservation_id}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "released")

    def test_release_unknown(self) -> None:
        response = self.client.post("/api/reservations/release", {"reservation_id": "RSV-NOPE"}, format="json")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")


class ConfirmEndpointTests(ReservationApiTestCase):
    def test_confirm(self) -> None:
        reservation_id = self._reserve(quantity=2).json()["reservation_id"]

        response = self.client.post(
            "/api/reservations/confirm",
            {"reservation_id": reservation_id, "idempotency_key": "PAY-1", "reference": "ORDER-1"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "confirmed")
        self.assertEqual(response.json()["reference"], "ORDER-1")
        self.assertEqual(StockRecord.objects.get(sku="SKU-A").total_stock, 3)

    def test_stranger_cannot_confirm(self) -> None:
        reservation = _hold("user:1", quantity=2)

        response = APIClient().post(
            "/api/reservations/confirm", {"reservation_id": reservation.reservation_id}, format="json"
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(StockRecord.objects.get(sku="SKU-A").total_stock, 5)
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, "active")

    def test_confirm_unknown(self) -> None:
        response = self.client.post("/api/reservations/confirm", {"reservation_id": "RSV-NOPE"}, format="json")

        self.assertEqual(response.status_code, 404)

    def test_confirm_expired(self) -> None:
        reservation_id = self._reserve(quantity=2).json()["reservation_id"]
        Reservation.objects.filter(reservation_id=reservation_id).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )

        response = self.client.post("/api/reservations/confirm", {"reservation_id": reservation_id}, format="json")

        self.assertEqual(response.status_code, 410)
        self.assertEqual(response.json()["code"], "expired")

    def test_confirm_ledger_unavailable(self) -> None:
        reservation_id = self._reserve(quantity=2).json()["reservation_id"]

        with mock.patch(
            "reservoir.contrib.ledger.adapters.model.ModelLedgerBackend.decrement_stock",
            side_effect=LedgerUnavailable(message="catalog down"),
        ):
            response = self.client.post(
                "/api/reservations/confirm", {"reservation_id": reservation_id}, format="json"
            )

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "ledger_unavailable")
        self.assertEqual(Reservation.objects.get(reservation_id=reservation_id).status, "active")


class CheckStockEndpointTests(ReservationApiTestCase):
    def test_check_stock(self) -> None:
        response = self.client.post(
            "/api/reservations/check-stock",
            {
                "items": [
                    {"sku": "SKU-A", "quantity": 2},
                    {"sku": "SHIRT", "variant": "P", "quantity": 3},
                ]
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertFalse(data["satisfiable"])
        self.assertTrue(data["details"][0]["available"])
        self.assertFalse(data["details"][1]["available"])
        self.assertEqual(data["details"][1]["message"], "Apenas 2 unidade(s) disponível(is)")
        self.assertEqual(Reservation.objects.count(), 0)

    def test_check_stock_requires_items(self) -> None:
        response = self.client.post("/api/reservations/check-stock", {"items": []}, format="json")

        self.assertEqual(response.status_code, 400)


class MineEndpointTests(ReservationApiTestCase):
    def test_lists_own_active_reservations(self) -> None:
        user = User.objects.create_user(username="buyer", password="x")
        self.client.force_authenticate(user)
        kept = self.client.post("/api/reservations/reserve", {"sku": "SKU-A", "quantity": 1}, format="json")
        dropped = self.client.post("/api/reservations/reserve", {"sku": "SKU-A", "quantity": 1}, format="json")
        _hold("user:someone-else")
        self.client.post(
            "/api/reservations/release", {"reservation_id": dropped.json()["reservation_id"]}, format="json"
        )

        response = self.client.get("/api/reservations/mine")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["holder_id"], f"user:{user.pk}")
        self.assertEqual([r["reservation_id"] for r in data["reservations"]], [kept.json()["reservation_id"]])

        everything = self.client.get("/api/reservations/mine?all=1").json()
        self.assertEqual(len(everything["reservations"]), 2)

    def test_holder_param_only_for_staff(self) -> None:
        _hold("user:42")
        user = User.objects.create_user(username="buyer", password="x")
        self.client.force_authenticate(user)

        response = self.client.get("/api/reservations/mine?holder_id=user:42")
        self.assertEqual(response.json()["reservations"], [])

        staff = User.objects.create_user(username="staff", password="x", is_staff=True)
        self.client.force_authenticate(staff)
        response = self.client.get("/api/reservations/mine?holder_id=user:42")
        self.assertEqual(len(response.json()["reservations"]), 1)


class SweepEndpointTests(ReservationApiTestCase):
    def test_requires_staff(self) -> None:
        self.assertEqual(self.client.post("/api/reservations/sweep").status_code, 403)

        user = User.objects.create_user(username="buyer", password="x")
        self.client.force_authenticate(user)
        self.assertEqual(self.client.post("/api/reservations/sweep").status_code, 403)

    def test_staff_sweep(self) -> None:
        reservation_id = self._reserve(quantity=2).json()["reservation_id"]
        Reservation.objects.filter(reservation_id=reservation_id).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )
        staff = User.objects.create_user(username="staff", password="x", is_staff=True)
        self.client.force_authenticate(staff)

        response = self.client.post("/api/reservations/sweep")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["expired"], 1)
        self.assertEqual(response.json()["keys"], ["SKU-A"])


class AvailabilityEndpointTests(ReservationApiTestCase):
    def test_availability(self) -> None:
        self._reserve(quantity=4)

        response = self.client.get("/api/availability/SKU-A")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["total_stock"], 5)
        self.assertEqual(data["reserved_stock"], 4)
        self.assertEqual(data["available_stock"], 1)
        self.assertTrue(data["is_low"])

    def test_availability_for_variant(self) -> None:
        response = self.client.get("/api/availability/SHIRT?variant=P")

        self.assertEqual(response.json()["available_stock"], 2)
        self.assertEqual(response.json()["variant"], "P")

    def test_unknown_sku_has_nothing_available(self) -> None:
        response = self.client.get("/api/availability/MISSING")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["available_stock"], 0)
        self.assertTrue(response.json()["is_out_of_stock"])

    def test_anonymous_lookups_leave_no_rows(self) -> None:
        for n in range(20):
            self.client.get(f"/api/availability/NOPE-{n}")
            self.client.get(f"/api/stock/NOPE-{n}/poll")

        self.assertEqual(ReservationKey.objects.count(), 0)


class HealthCheckTests(TestCase):
    def test_health(self) -> None:
        response = self.client.get("/api/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "healthy", "version": __version__})
