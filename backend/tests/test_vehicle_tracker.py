"""Tests for VehicleTracker."""

import asyncio

import pytest

from conftest import LINE_4, LINE_12, build_positions_feed, build_trip_updates_feed
from sl_tracker.core.errors import UpstreamError
from sl_tracker.core.feed_decoder import FeedDecoder
from sl_tracker.core.vehicle_tracker import VehicleTracker

POSITIONS = build_positions_feed([
    {"vehicle_id": "v1", "label": "4711", "trip_id": "14010000123456789", "route_id": "",
     "lat": 59.33, "lon": 18.06, "bearing": 90.0, "speed": 8.0},
    {"vehicle_id": "v2", "label": "1234", "trip_id": "14010000000000001",
     "lat": 59.34, "lon": 18.05},
])
TRIP_UPDATES = build_trip_updates_feed([
    {"trip_id": "14010000000000001", "direction_id": 0, "stops": [("s1", 90, None)]},
])


class FakeFeed:
    """Serves queued payloads; an exception in the queue is raised instead."""

    def __init__(self, positions=POSITIONS, trip_updates=TRIP_UPDATES) -> None:
        self.positions = positions
        self.trip_updates = trip_updates
        self.gate: asyncio.Event | None = None

    async def fetch_vehicle_positions(self) -> bytes:
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.positions, Exception):
            raise self.positions
        return self.positions

    async def fetch_trip_updates(self) -> bytes:
        if isinstance(self.trip_updates, Exception):
            raise self.trip_updates
        return self.trip_updates


def test_poll_publishes_snapshot(catalog):
    """Test a healthy tick producing resolved vehicles."""
    tracker = VehicleTracker(FakeFeed(), FeedDecoder(), catalog)
    adopted = asyncio.run(tracker.poll_vehicles())

    assert adopted is True
    assert tracker.degraded is False
    assert tracker.snapshot.seq == 1
    by_id = {v.id: v for v in tracker.vehicles}
    assert by_id["v1"].line == LINE_12
    assert by_id["v1"].destination == "Sollentuna"
    assert by_id["v2"].line == LINE_4
    assert by_id["v2"].delay_seconds == 90
    assert by_id["v2"].destination == "Gullmarsplan"


def test_positions_failure_keeps_previous_set(catalog):
    """Test that a failed positions fetch keeps the last snapshot and degrades."""
    feed = FakeFeed()
    tracker = VehicleTracker(feed, FeedDecoder(), catalog)
    asyncio.run(tracker.poll_vehicles())

    feed.positions = UpstreamError("vehicle positions", "HTTP 503", status_code=503)
    adopted = asyncio.run(tracker.poll_vehicles())

    assert adopted is False
    assert tracker.degraded is True
    assert len(tracker.vehicles) == 2
    assert tracker.snapshot.seq == 1


def test_malformed_positions_degrade(catalog):
    """Test that an undecodable positions payload is treated like an outage."""
    tracker = VehicleTracker(FakeFeed(positions=b"\xff" * 64), FeedDecoder(), catalog)
    assert asyncio.run(tracker.poll_vehicles()) is False
    assert tracker.degraded is True
    assert tracker.vehicles == ()


def test_trip_updates_failure_is_partial(catalog):
    """Test that vehicles still resolve without trip updates."""
    feed = FakeFeed(trip_updates=UpstreamError("trip updates", "timeout"))
    tracker = VehicleTracker(feed, FeedDecoder(), catalog)

    assert asyncio.run(tracker.poll_vehicles()) is True
    assert tracker.snapshot.partial is True
    assert tracker.degraded is True
    assert all(v.delay_seconds is None for v in tracker.vehicles)
    assert len(tracker.vehicles) == 2


def test_unexpected_errors_propagate(catalog):
    """Test that errors outside the upstream taxonomy are not swallowed."""
    tracker = VehicleTracker(FakeFeed(positions=RuntimeError("boom")), FeedDecoder(), catalog)
    with pytest.raises(RuntimeError):
        asyncio.run(tracker.poll_vehicles())


def test_overlapping_ticks_keep_latest(catalog):
    """Test that a slow older tick finishing last does not replace a newer snapshot."""
    async def scenario():
        slow_feed = FakeFeed()
        slow_feed.gate = asyncio.Event()
        tracker = VehicleTracker(slow_feed, FeedDecoder(), catalog)

        slow_tick = asyncio.create_task(tracker.poll_vehicles())
        await asyncio.sleep(0)

        # A newer tick completes first with a different vehicle set
        tracker.feed = FakeFeed(positions=build_positions_feed([
            {"vehicle_id": "v9", "trip_id": "14010000000000003", "lat": 59.30, "lon": 18.08},
        ]))
        fast_adopted = await tracker.poll_vehicles()

        slow_feed.gate.set()
        slow_adopted = await slow_tick
        return tracker, fast_adopted, slow_adopted

    tracker, fast_adopted, slow_adopted = asyncio.run(scenario())
    assert fast_adopted is True
    assert slow_adopted is False
    assert tracker.snapshot.seq == 2
    assert [v.id for v in tracker.vehicles] == ["v9"]


def test_find_vehicle_in_snapshot(catalog):
    """Test vehicle lookup against the adopted snapshot."""
    tracker = VehicleTracker(FakeFeed(), FeedDecoder(), catalog)
    assert tracker.find_vehicle("4711") is None
    asyncio.run(tracker.poll_vehicles())

    vehicle, route_id = tracker.find_vehicle("4711")
    assert vehicle.id == "v1"
    assert route_id == LINE_12


def test_late_failed_tick_does_not_degrade_newer_snapshot(catalog):
    """Test that an older tick failing after a newer adoption leaves the status healthy."""
    async def scenario():
        slow_feed = FakeFeed(positions=UpstreamError("vehicle positions", "timeout"))
        slow_feed.gate = asyncio.Event()
        tracker = VehicleTracker(slow_feed, FeedDecoder(), catalog)

        slow_tick = asyncio.create_task(tracker.poll_vehicles())
        await asyncio.sleep(0)

        tracker.feed = FakeFeed()
        await tracker.poll_vehicles()

        slow_feed.gate.set()
        slow_adopted = await slow_tick
        return tracker, slow_adopted

    tracker, slow_adopted = asyncio.run(scenario())
    assert slow_adopted is False
    assert tracker.degraded is False
    assert tracker.snapshot.seq == 2
