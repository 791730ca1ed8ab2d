"""
Concurrent reserve/confirm against the same key.

Runs on TransactionTestCase: each worker thread gets its own database
connection and commits for real.
"""

from __future__ import annotations

import threading

from django.db import connection
from django.test import TransactionTestCase

from reservoir.exceptions import InsufficientStock
from reservoir.models import Reservation, StockRecord
from reservoir.services import ReservationCoordinator


class ConcurrentReserveTests(TransactionTestCase):
    def _race(self, workers: int, target) -> tuple[list, list]:
        barrier = threading.Barrier(workers)
        winners = []
        losers = []
        errors = []

        def run(i: int) -> None:
            try:
                barrier.wait(timeout=5)
                winners.append(target(i))
            except InsufficientStock as e:
                losers.append(e)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=run, args=(i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        self.assertEqual(errors, [])
        return winners, losers

    def test_exactly_floor_capacity_over_quantity_succeed(self) -> None:
        StockRecord.objects.create(sku="SKU-A", total_stock=10)
        coordinator = ReservationCoordinator(broadcast=False)

        winners, losers = self._race(
            8, lambda i: coordinator.reserve("SKU-A", quantity=3, holder_id=f"u{i}")
        )

        self.assertEqual(len(winners), 3)
        self.assertEqual(len(losers), 5)
        self.assertEqual(Reservation.objects.active().reserved_quantity(), 9)
        self.assertEqual(coordinator.get_availability("SKU-A").available_stock, 1)

    def test_one_winner_for_last_unit(self) -> None:
        StockRecord.objects.create(sku="SKU-A", total_stock=1)
        coordinator = ReservationCoordinator(broadcast=False)

        winners, losers = self._race(
            2, lambda i: coordinator.reserve("SKU-A", quantity=1, holder_id=f"u{i}")
        )

        self.assertEqual(len(winners), 1)
        self.assertEqual(len(losers), 1)
        self.assertEqual(losers[0].code, "insufficient_stock")
        self.assertTrue(coordinator.get_availability("SKU-A").is_out_of_stock)

    def test_separate_coordinators_share_serialization(self) -> None:
        """Each thread with its own coordinator still serializes through the key row."""
        StockRecord.objects.create(sku="SKU-A", total_stock=4)

        winners, losers = self._race(
            6,
            lambda i: ReservationCoordinator(broadcast=False).reserve("SKU-A", quantity=2, holder_id=f"u{i}"),
        )

        self.assertEqual(len(winners), 2)
        self.assertEqual(len(losers), 4)

    def test_confirms_and_reserves_conserve_stock(self) -> None:
        StockRecord.objects.create(sku="SKU-A", total_stock=6)
        coordinator = ReservationCoordinator(broadcast=False)
        held = [coordinator.reserve("SKU-A", quantity=1, holder_id=f"h{i}") for i in range(3)]

        def work(i: int):
            if i < 3:
                return coordinator.confirm(held[i].reservation_id)
            return coordinator.reserve("SKU-A", quantity=1, holder_id=f"u{i}")

        winners, losers = self._race(7, work)

        confirmed = [r for r in winners if r.status == Reservation.Status.CONFIRMED]
        reserved = [r for r in winners if r.status == Reservation.Status.ACTIVE]
        # A reserve racing a confirm mid-flight may be refused; it never oversells
        self.assertEqual(len(confirmed), 3)
        self.assertLessEqual(len(reserved), 3)
        self.assertEqual(len(reserved) + len(losers), 4)
        self.assertEqual(StockRecord.objects.get(sku="SKU-A").total_stock, 3)
        self.assertEqual(Reservation.objects.active().reserved_quantity(), len(reserved))
        self.assertEqual(coordinator.get_availability("SKU-A").available_stock, 3 - len(reserved))
