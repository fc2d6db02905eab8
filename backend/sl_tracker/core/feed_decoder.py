"""Decode GTFS-RT FeedMessage payloads into typed, schedule-independent records."""

import logging
from dataclasses import dataclass

from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.protobuf.message import Message
from google.transit import gtfs_realtime_pb2

from sl_tracker.core.errors import DecodeError

logger = logging.getLogger(__name__)

# Payloads shorter than this cannot hold a single entity (header only or empty)
MIN_FEED_BYTES = 20


def _as_float(value, default: float | None = None) -> float | None:
    """Accept native numbers and numeric strings (64-bit fields arrive as strings)."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value, default: int | None = None) -> int | None:
    number = _as_float(value)
    return int(number) if number is not None else default


def _check_text_fields(message: Message) -> None:
    """Raise DecodeError for string fields that did not decode as UTF-8.

    Proto2 parsing hands such fields back as bytes instead of failing.
    """
    for field, value in message.ListFields():
        if field.type == field.TYPE_MESSAGE:
            for item in ([value] if isinstance(value, Message) else value):
                _check_text_fields(item)
        elif field.type == field.TYPE_STRING:
            for item in ([value] if isinstance(value, (str, bytes)) else value):
                if isinstance(item, bytes):
                    raise DecodeError(f"Field {field.full_name} is not valid UTF-8: {item!r}")


def _as_str(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class DecodedVehiclePosition:
    entity_id: str
    vehicle_id: str | None
    vehicle_label: str | None
    trip_id: str | None
    route_id: str | None
    direction_id: int | None
    lat: float
    lon: float
    bearing: float
    speed_mps: float
    timestamp: int | None


@dataclass(frozen=True)
class DecodedTripUpdate:
    trip_id: str
    route_id: str | None
    direction_id: int | None
    delay_seconds: int | None  # from the first stop-time update
    last_stop_id: str | None  # stop of the last stop-time update


class FeedDecoder:
    """Owns the FeedMessage schema and turns raw bytes into decoded records."""

    def __init__(self) -> None:
        self._message_type = gtfs_realtime_pb2.FeedMessage

    def _entities(self, payload: bytes) -> list[dict]:
        if len(payload) < MIN_FEED_BYTES:
            logger.debug("Feed payload too short (%d bytes), treating as empty", len(payload))
            return []
        feed = self._message_type()
        try:
            feed.ParseFromString(payload)
        except (ProtobufDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Malformed GTFS-RT payload ({len(payload)} bytes): {e}") from e
        entities = []
        for entity in feed.entity:
            _check_text_fields(entity)
            entities.append(MessageToDict(entity, preserving_proto_field_name=True))
        return entities

    def decode_vehicle_positions(self, payload: bytes) -> list[DecodedVehiclePosition]:
        positions = []
        for entity in self._entities(payload):
            vehicle = entity.get("vehicle")
            if not vehicle:
                continue
            trip = vehicle.get("trip")
            position = vehicle.get("position")
            if trip is None or not position:
                continue
            lat = _as_float(position.get("latitude"))
            lon = _as_float(position.get("longitude"))
            if lat is None or lon is None:
                continue
            descriptor = vehicle.get("vehicle", {})
            positions.append(DecodedVehiclePosition(
                entity_id=str(entity.get("id", "")),
                vehicle_id=_as_str(descriptor.get("id")),
                vehicle_label=_as_str(descriptor.get("label")),
                trip_id=_as_str(trip.get("trip_id")),
                route_id=_as_str(trip.get("route_id")),
                direction_id=_as_int(trip.get("direction_id")),
                lat=lat,
                lon=lon,
                bearing=_as_float(position.get("bearing"), 0.0),
                speed_mps=_as_float(position.get("speed"), 0.0),
                timestamp=_as_int(vehicle.get("timestamp")),
            ))
        logger.debug("Decoded %d vehicle positions", len(positions))
        return positions

    def decode_trip_updates(self, payload: bytes) -> list[DecodedTripUpdate]:
        updates = []
        for entity in self._entities(payload):
            trip_update = entity.get("trip_update")
            if not trip_update:
                continue
            trip = trip_update.get("trip")
            trip_id = _as_str(trip.get("trip_id")) if trip else None
            if not trip_id:
                continue
            stop_time_updates = trip_update.get("stop_time_update", [])
            delay = None
            last_stop_id = None
            if stop_time_updates:
                first = stop_time_updates[0]
                for event in ("arrival", "departure"):
                    delay = _as_int(first.get(event, {}).get("delay"))
                    if delay is not None:
                        break
                last_stop_id = _as_str(stop_time_updates[-1].get("stop_id"))
            updates.append(DecodedTripUpdate(
                trip_id=trip_id,
                route_id=_as_str(trip.get("route_id")),
                direction_id=_as_int(trip.get("direction_id")),
                delay_seconds=delay,
                last_stop_id=last_stop_id,
            ))
        logger.debug("Decoded %d trip updates", len(updates))
        return updates
