"""Tests for FeedDecoder."""

import pytest

from conftest import build_positions_feed, build_trip_updates_feed
from sl_tracker.core.errors import DecodeError
from sl_tracker.core.feed_decoder import FeedDecoder


def test_decode_vehicle_position_fields():
    """Test that every field of a full vehicle position survives decoding."""
    payload = build_positions_feed([{
        "entity_id": "e1", "vehicle_id": "9031001004711000", "label": "4711",
        "trip_id": "14010000123456789", "route_id": "9011001001200000", "direction_id": 1,
        "lat": 59.33, "lon": 18.06, "bearing": 90.0, "speed": 8.0,
    }])
    [pos] = FeedDecoder().decode_vehicle_positions(payload)

    assert pos.entity_id == "e1"
    assert pos.vehicle_id == "9031001004711000"
    assert pos.vehicle_label == "4711"
    assert pos.trip_id == "14010000123456789"
    assert pos.route_id == "9011001001200000"
    assert pos.direction_id == 1
    assert pos.lat == pytest.approx(59.33, abs=1e-5)
    assert pos.lon == pytest.approx(18.06, abs=1e-5)
    assert pos.bearing == pytest.approx(90.0)
    assert pos.speed_mps == pytest.approx(8.0)
    assert pos.timestamp == 1_700_000_000


def test_missing_optional_fields_default():
    """Test that bearing and speed default to zero and empty ids become None."""
    payload = build_positions_feed([{"trip_id": "t1", "route_id": "", "lat": 59.3, "lon": 18.0}])
    [pos] = FeedDecoder().decode_vehicle_positions(payload)

    assert pos.route_id is None
    assert pos.direction_id is None
    assert pos.bearing == 0.0
    assert pos.speed_mps == 0.0
    assert pos.vehicle_label is None


def test_entities_without_trip_or_position_are_dropped():
    """Test that only entities with both a trip descriptor and a position are kept."""
    payload = build_positions_feed([
        {"entity_id": "no-trip", "lat": 59.3, "lon": 18.0},
        {"entity_id": "no-position", "trip_id": "t2"},
        {"entity_id": "ok", "trip_id": "t3", "lat": 59.3, "lon": 18.0},
    ])
    positions = FeedDecoder().decode_vehicle_positions(payload)
    assert [p.entity_id for p in positions] == ["ok"]


def test_short_payload_is_empty():
    """Test that payloads below the minimum size decode to an empty batch."""
    decoder = FeedDecoder()
    assert decoder.decode_vehicle_positions(b"") == []
    assert decoder.decode_trip_updates(b"\x0a\x03") == []


def test_malformed_payload_raises_decode_error():
    """Test that garbage bytes raise DecodeError."""
    with pytest.raises(DecodeError):
        FeedDecoder().decode_vehicle_positions(b"\xff" * 64)


def test_trip_update_delay_prefers_arrival():
    """Test delay from the first stop-time update, arrival before departure."""
    payload = build_trip_updates_feed([
        {"trip_id": "t1", "stops": [("s1", 60, 90), ("s2", 120, None)]},
        {"trip_id": "t2", "stops": [("s1", None, 45), ("s9", None, None)]},
        {"trip_id": "t3", "stops": []},
    ])
    updates = {u.trip_id: u for u in FeedDecoder().decode_trip_updates(payload)}

    assert updates["t1"].delay_seconds == 60
    assert updates["t1"].last_stop_id == "s2"
    assert updates["t2"].delay_seconds == 45
    assert updates["t2"].last_stop_id == "s9"
    assert updates["t3"].delay_seconds is None
    assert updates["t3"].last_stop_id is None


def test_trip_update_without_trip_id_is_dropped():
    """Test that trip updates lacking a trip id are skipped."""
    payload = build_trip_updates_feed([
        {"route_id": "r1", "stops": [("s1", 10, None)]},
        {"trip_id": "t1", "route_id": "r1", "direction_id": 0},
    ])
    [update] = FeedDecoder().decode_trip_updates(payload)
    assert update.trip_id == "t1"
    assert update.route_id == "r1"
    assert update.direction_id == 0


def test_invalid_utf8_string_field_raises_decode_error():
    """Test that a trip id that is not valid UTF-8 raises DecodeError."""
    payload = build_positions_feed([{"trip_id": "TRIPIDXXXXX", "lat": 59.3, "lon": 18.0}])
    corrupted = payload.replace(b"TRIPIDXX", b"TRIPID\xff\xfe")
    assert corrupted != payload

    with pytest.raises(DecodeError):
        FeedDecoder().decode_vehicle_positions(corrupted)
