"""
Tests for api/sse module (SSE stream and polling fallback).
"""

from __future__ import annotations

import json

from django.test import TestCase, override_settings

from reservoir.api.sse import event_stream, format_sse
from reservoir.contrib.realtime.backends import LocalBroadcaster
from reservoir.contrib.realtime.service import clear_backends, load_configured_backends, register_backend
from reservoir.models import StockRecord
from reservoir.services import ReservationCoordinator


def _clock(*values):
    return iter(values).__next__


class FormatSseTests(TestCase):
    def test_format_with_id(self) -> None:
        text = format_sse("stock_updated", {"available_stock": 3}, event_id=7)

        self.assertEqual(text, 'id: 7\nevent: stock_updated\ndata: {"available_stock": 3}\n\n')

    def test_format_without_id(self) -> None:
        self.assertTrue(format_sse("resync", {}).startswith("event: resync\n"))


class EventStreamTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.hub = LocalBroadcaster(queue_size=1)

    def test_snapshot_events_and_heartbeat(self) -> None:
        subscription = self.hub.subscribe("stock:SKU-A")
        self.hub.publish(channel="stock:SKU-A", event="stock_updated", payload={"available_stock": 1})

        chunks = list(
            event_stream(
                subscription,
                {"available_stock": 2},
                heartbeat=0.01,
                lifetime=10,
                clock=_clock(0, 1, 2, 20),
            )
        )

        self.assertEqual(len(chunks), 3)
        self.assertIn('data: {"available_stock": 2}', chunks[0])
        self.assertIn("id: 1\nevent: stock_updated", chunks[1])
        self.assertEqual(chunks[2], ": heartbeat\n\n")
        self.assertEqual(self.hub.subscriber_count(), 0)

    def test_resync_after_dropped_events(self) -> None:
        subscription = self.hub.subscribe("stock:SKU-A")
        for i in range(3):
            self.hub.publish(channel="stock:SKU-A", event="stock_updated", payload={"i": i})

        chunks = list(event_stream(subscription, None, heartbeat=0.01, lifetime=10, clock=_clock(0, 20)))

        self.assertEqual(len(chunks), 1)
        self.assertIn("event: resync", chunks[0])
        self.assertIn('"dropped": 2', chunks[0])

    def test_leave_on_client_disconnect(self) -> None:
        subscription = self.hub.subscribe("stock:SKU-A")
        stream = event_stream(subscription, {"available_stock": 2}, heartbeat=0.01, lifetime=10)

        next(stream)
        self.assertEqual(self.hub.subscriber_count(), 1)
        stream.close()

        self.assertEqual(self.hub.subscriber_count(), 0)


class StreamViewTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        clear_backends()
        self.hub = LocalBroadcaster()
        register_backend("local", self.hub)
        StockRecord.objects.create(sku="SKU-A", variant="P", total_stock=5)

    def tearDown(self) -> None:
        clear_backends()
        load_configured_backends()
        super().tearDown()

    @override_settings(RESERVOIR={"STREAM_MAX_SECONDS": 0.05, "STREAM_HEARTBEAT_SECONDS": 0.01})
    def test_stock_stream_starts_with_snapshot(self) -> None:
        response = self.client.get("/api/stock/SKU-A/stream?variant=P")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/event-stream")
        self.assertEqual(response["Cache-Control"], "no-cache")
        self.assertEqual(self.hub.subscriber_count("stock:SKU-A:P"), 1)

        body = b"".join(response.streaming_content).decode()

        first = body.split("\n\n")[0]
        self.assertIn("event: stock_updated", first)
        snapshot = json.loads(first.split("data: ", 1)[1])
        self.assertEqual(snapshot["available_stock"], 5)
        self.assertEqual(snapshot["reason"], "snapshot")
        self.assertNotIn("total_stock", snapshot)
        self.assertEqual(self.hub.subscriber_count(), 0)

    @override_settings(RESERVOIR={"STREAM_MAX_SECONDS": 0.05, "STREAM_HEARTBEAT_SECONDS": 0.01})
    def test_inventory_stream_has_no_snapshot(self) -> None:
        response = self.client.get("/api/inventory/stream")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.hub.subscriber_count("inventory"), 1)
        body = b"".join(response.streaming_content).decode()
        self.assertNotIn("event: stock_updated", body)

    def test_stream_unavailable_without_local_hub(self) -> None:
        clear_backends()

        response = self.client.get("/api/stock/SKU-A/stream")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "stream_unavailable")

    def test_stream_requires_get(self) -> None:
        self.assertEqual(self.client.post("/api/stock/SKU-A/stream").status_code, 405)


class PollViewTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        StockRecord.objects.create(sku="SKU-A", total_stock=5)

    def test_poll_reflects_reservations(self) -> None:
        ReservationCoordinator(broadcast=False).reserve("SKU-A", quantity=5, holder_id="u1")

        response = self.client.get("/api/stock/SKU-A/poll")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["available_stock"], 0)
        self.assertTrue(data["is_out_of_stock"])
        self.assertIsNone(data["variant"])
        self.assertEqual(data["reason"], "snapshot")
