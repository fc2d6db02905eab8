"""Fuse decoded vehicle positions with trip updates and static context."""

import logging
from collections.abc import Iterable

from sl_tracker.core.feed_decoder import DecodedTripUpdate, DecodedVehiclePosition
from sl_tracker.schemas.vehicle import LiveVehicle

logger = logging.getLogger(__name__)

UNKNOWN_DESTINATION = "unknown"
# The SL feed does not tell vehicle kinds apart yet
DEFAULT_VEHICLE_KIND = "bus"
MPS_TO_KMH = 3.6

_PLACEHOLDER_HEADSIGNS = {"", "unknown", "okänd", "n/a", "-"}


def _is_placeholder(text: str | None) -> bool:
    return text is None or text.strip().lower() in _PLACEHOLDER_HEADSIGNS


def index_trip_updates(trip_updates: Iterable[DecodedTripUpdate]) -> dict[str, DecodedTripUpdate]:
    """Map trip id -> trip update; the first update for a trip wins."""
    by_trip: dict[str, DecodedTripUpdate] = {}
    for tu in trip_updates:
        by_trip.setdefault(tu.trip_id, tu)
    return by_trip


class VehicleResolver:
    """Produces one labeled LiveVehicle per attributable live trip.

    ``catalog`` must provide ``get_trip_map_entry``, ``get_route_direction_headsign``
    and ``get_stop_name``. Resolution has no side effects.
    """

    def resolve(
        self,
        positions: Iterable[DecodedVehiclePosition],
        trip_updates: Iterable[DecodedTripUpdate],
        catalog,
    ) -> list[LiveVehicle]:
        updates = index_trip_updates(trip_updates)
        vehicles = []
        dropped = 0
        for pos in positions:
            vehicle = self._resolve_one(pos, updates, catalog)
            if vehicle is None:
                dropped += 1
                continue
            vehicles.append(vehicle)
        if dropped:
            logger.debug("Dropped %d unattributable vehicle positions", dropped)
        return vehicles

    def find_vehicle(
        self,
        number: str,
        positions: Iterable[DecodedVehiclePosition],
        trip_updates: Iterable[DecodedTripUpdate],
        catalog,
    ) -> tuple[LiveVehicle, str] | None:
        """Linear scan for a vehicle by its label or the trailing digits of its id.

        Only the first matching position is considered; None when it has no
        resolvable route.
        """
        query = number.strip()
        if not query:
            return None
        for pos in positions:
            if not self._matches_number(pos, query):
                continue
            vehicle = self._resolve_one(pos, index_trip_updates(trip_updates), catalog)
            if vehicle is None:
                return None
            return vehicle, vehicle.line
        return None

    @staticmethod
    def _matches_number(pos: DecodedVehiclePosition, query: str) -> bool:
        if pos.vehicle_label and pos.vehicle_label.strip() == query:
            return True
        if not query.isdigit():
            return False
        vehicle_id = pos.vehicle_id or pos.entity_id
        return bool(vehicle_id) and vehicle_id.endswith(query)

    def _resolve_one(
        self,
        pos: DecodedVehiclePosition,
        updates: dict[str, DecodedTripUpdate],
        catalog,
    ) -> LiveVehicle | None:
        if not pos.trip_id:
            return None

        tu = updates.get(pos.trip_id)
        trip_entry = catalog.get_trip_map_entry(pos.trip_id)

        route_id = (
            pos.route_id
            or (tu.route_id if tu else None)
            or (trip_entry.route_id if trip_entry else None)
        )
        if not route_id:
            return None

        direction_id = pos.direction_id
        if direction_id is None and tu is not None:
            direction_id = tu.direction_id

        return LiveVehicle(
            id=pos.vehicle_id or pos.entity_id,
            line=route_id,
            trip_id=pos.trip_id,
            vehicle_number=pos.vehicle_label or "N/A",
            lat=pos.lat,
            lng=pos.lon,
            bearing=pos.bearing,
            speed_kmh=pos.speed_mps * MPS_TO_KMH,
            destination=self._destination(route_id, direction_id, trip_entry, tu, catalog),
            delay_seconds=tu.delay_seconds if tu else None,
            vehicle_kind=DEFAULT_VEHICLE_KIND,
        )

    @staticmethod
    def _destination(route_id, direction_id, trip_entry, tu, catalog) -> str:
        if trip_entry and not _is_placeholder(trip_entry.headsign):
            return trip_entry.headsign.strip()

        headsign = catalog.get_route_direction_headsign(route_id, direction_id)
        if not _is_placeholder(headsign):
            return headsign.strip()

        # Last resort: the last stop in the trip update is only a rough proxy
        if tu is not None:
            stop_name = catalog.get_stop_name(tu.last_stop_id)
            if not _is_placeholder(stop_name):
                return stop_name.strip()

        return UNKNOWN_DESTINATION
