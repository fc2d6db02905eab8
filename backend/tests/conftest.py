"""Shared fixtures: GTFS-RT payload builders and a small static extract."""

import copy

import httpx
import orjson
import pytest
from google.transit import gtfs_realtime_pb2

from sl_tracker.core.static_catalog import StaticCatalog, StaticExtract, parse_trip_map
from sl_tracker.schemas.catalog import RouteManifestEntry, Stop

EXTRACT_BASE_URL = "http://extract.test/data"

LINE_4 = "9011001000400000"
LINE_12 = "9011001001200000"
LINE_14 = "9011001001400000"
LINE_40 = "9011001004000000"

EXTRACT = {
    "manifest.json": [
        {"id": LINE_4, "line": "4", "description": "Radiohuset - Gullmarsplan",
         "from": "Radiohuset", "to": "Gullmarsplan"},
        {"id": LINE_12, "line": "12", "description": "Sollentuna - Kista",
         "from": "Kista", "to": "Sollentuna"},
        {"id": LINE_14, "line": "14", "description": "Mörby centrum - Fruängen",
         "from": "Mörby centrum", "to": "Fruängen"},
        {"id": LINE_40, "line": "40", "description": "Uppsala C - Södertälje C",
         "from": "Uppsala C", "to": "Södertälje C"},
    ],
    "stops.json": [
        {"id": "9022001010001001", "name": "T-Centralen", "lat": 59.3310, "lng": 18.0590},
        {"id": "9022001010001002", "name": "T-Centralen", "lat": 59.3312, "lng": 18.0594},
        {"id": "9022001010099001", "name": "T-Centralen", "lat": 59.4000, "lng": 18.1000},
        {"id": "9022001010002001", "name": "Odenplan", "lat": 59.3430, "lng": 18.0490},
        {"id": "9022001010003001", "name": "Sollentuna station", "lat": 59.4280, "lng": 17.9480},
        {"id": "9022001010004001", "name": "Gullmarsplan", "lat": 59.2990, "lng": 18.0810},
    ],
    "trip-to-route.json": {
        "14010000123456789": {"r": LINE_12, "h": "Sollentuna"},
        "14010000000000001": LINE_4,
        "14010000000000002": {"routeId": LINE_40, "headsign": "Okänd"},
        "14010000000000003": {"routeId": LINE_4, "headsign": "Radiohuset"},
    },
    "route-directions.json": {
        LINE_4: {"0": "Gullmarsplan", "1": "Radiohuset"},
    },
    "lines/" + LINE_4 + ".json": {
        "id": LINE_4,
        "line": "4",
        "description": "Radiohuset - Gullmarsplan",
        "trip_ids": ["14010000000000001", "14010000000000003"],
        "path": [[59.3310, 18.0590], [59.3430, 18.0490], [59.2990, 18.0810]],
        "stops": [
            {"id": "9022001010001001", "name": "T-Centralen", "lat": 59.3310, "lng": 18.0590},
            {"id": "9022001010002001", "name": "Odenplan", "lat": 59.3430, "lng": 18.0490},
            {"id": "9022001010004001", "name": "Gullmarsplan", "lat": 59.2990, "lng": 18.0810},
        ],
    },
}


def _feed_message() -> gtfs_realtime_pb2.FeedMessage:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    feed.header.incrementality = gtfs_realtime_pb2.FeedHeader.FULL_DATASET
    feed.header.timestamp = 1_700_000_000
    return feed


def build_positions_feed(vehicles: list[dict]) -> bytes:
    """Serialize a VehiclePositions feed.

    Each dict may carry entity_id, vehicle_id, label, trip_id, route_id,
    direction_id, lat, lon, bearing, speed. A missing trip_id and route_id
    leaves the trip descriptor out; a missing lat leaves the position out.
    """
    feed = _feed_message()
    for i, v in enumerate(vehicles):
        entity = feed.entity.add()
        entity.id = v.get("entity_id", f"entity-{i}")
        vp = entity.vehicle
        if "trip_id" in v or "route_id" in v:
            if "trip_id" in v:
                vp.trip.trip_id = v["trip_id"]
            if "route_id" in v:
                vp.trip.route_id = v["route_id"]
            if "direction_id" in v:
                vp.trip.direction_id = v["direction_id"]
        if "lat" in v:
            vp.position.latitude = v["lat"]
            vp.position.longitude = v["lon"]
            if "bearing" in v:
                vp.position.bearing = v["bearing"]
            if "speed" in v:
                vp.position.speed = v["speed"]
        if "vehicle_id" in v:
            vp.vehicle.id = v["vehicle_id"]
        if "label" in v:
            vp.vehicle.label = v["label"]
        vp.timestamp = 1_700_000_000
    return feed.SerializeToString()


def build_trip_updates_feed(updates: list[dict]) -> bytes:
    """Serialize a TripUpdates feed.

    Each dict may carry trip_id, route_id, direction_id and ``stops``: a list
    of (stop_id, arrival_delay, departure_delay) tuples, None meaning unset.
    """
    feed = _feed_message()
    for i, u in enumerate(updates):
        entity = feed.entity.add()
        entity.id = f"tu-{i}"
        tu = entity.trip_update
        if "trip_id" in u:
            tu.trip.trip_id = u["trip_id"]
        if "route_id" in u:
            tu.trip.route_id = u["route_id"]
        if "direction_id" in u:
            tu.trip.direction_id = u["direction_id"]
        if not u.get("trip_id") and "route_id" not in u:
            tu.trip.schedule_relationship = gtfs_realtime_pb2.TripDescriptor.SCHEDULED
        for stop_id, arrival, departure in u.get("stops", []):
            stu = tu.stop_time_update.add()
            stu.stop_id = stop_id
            if arrival is not None:
                stu.arrival.delay = arrival
            if departure is not None:
                stu.departure.delay = departure
    return feed.SerializeToString()


def load_extract(raw: dict = EXTRACT) -> StaticExtract:
    return StaticExtract(
        manifest=[RouteManifestEntry.model_validate(r) for r in raw["manifest.json"]],
        stops=[Stop.model_validate(s) for s in raw["stops.json"]],
        trips=parse_trip_map(raw["trip-to-route.json"]),
        route_directions={
            route_id: {int(k): v for k, v in by_dir.items()}
            for route_id, by_dir in raw["route-directions.json"].items()
        },
    )


def extract_transport(files: dict | None = None, calls: list | None = None) -> httpx.MockTransport:
    """Serve extract files under EXTRACT_BASE_URL; anything else is a 404."""
    files = EXTRACT if files is None else files

    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.removeprefix("/data/")
        if calls is not None:
            calls.append(name)
        if name not in files:
            return httpx.Response(404)
        return httpx.Response(200, content=orjson.dumps(files[name]),
                              headers={"Content-Type": "application/json"})

    return httpx.MockTransport(handler)


@pytest.fixture
def extract_files():
    return copy.deepcopy(EXTRACT)


@pytest.fixture
def catalog():
    """Catalog with its resolution index loaded straight from the sample extract."""
    static = StaticCatalog(extract=None, session_factory=None)
    static._apply_index(load_extract())
    return static


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"
