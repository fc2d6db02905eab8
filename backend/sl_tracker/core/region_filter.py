"""Restrict live vehicles to an active route or a padded map viewport."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from shapely.geometry import LineString, MultiPoint, Point, box

from sl_tracker.schemas.catalog import LineRoute
from sl_tracker.schemas.vehicle import LiveVehicle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned lat/lng rectangle."""

    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_corners(cls, corners: Iterable[tuple[float, float]]) -> "Bounds":
        """Build from any set of (lat, lng) corner points."""
        points = MultiPoint([(lng, lat) for lat, lng in corners])
        if points.is_empty:
            raise ValueError("at least one corner is required")
        west, south, east, north = points.bounds
        return cls(south=south, west=west, north=north, east=east)

    @classmethod
    def of_path(cls, path: Sequence[tuple[float, float]]) -> "Bounds | None":
        """Bounding box of a (lat, lng) polyline, None for an empty path."""
        if not path:
            return None
        if len(path) == 1:
            return cls.from_corners(path)
        west, south, east, north = LineString([(lng, lat) for lat, lng in path]).bounds
        return cls(south=south, west=west, north=north, east=east)

    def pad(self, fraction: float) -> "Bounds":
        """Grow each side by ``fraction`` of the box height/width."""
        lat_buffer = abs(self.north - self.south) * fraction
        lng_buffer = abs(self.east - self.west) * fraction
        return Bounds(
            south=self.south - lat_buffer,
            west=self.west - lng_buffer,
            north=self.north + lat_buffer,
            east=self.east + lng_buffer,
        )

    def contains(self, lat: float, lng: float) -> bool:
        return box(self.west, self.south, self.east, self.north).covers(Point(lng, lat))


class RegionFilter:
    """Route and viewport filtering for the display layer."""

    def filter_by_route(self, vehicles: Sequence[LiveVehicle], route: LineRoute) -> list[LiveVehicle]:
        """Vehicles on one of the route's trips; falls back to matching the route id."""
        matched = [v for v in vehicles if v.trip_id in route.trip_ids]
        if not matched and vehicles:
            # Trip id set may be stale relative to the live feed
            matched = [v for v in vehicles if v.line == route.id]
            if matched:
                logger.debug(
                    "Route %s: no trip id matches, %d vehicles matched by route id",
                    route.id, len(matched),
                )
        return matched

    def filter_by_bounds(
        self,
        vehicles: Sequence[LiveVehicle],
        bounds: Bounds | None,
        padding: float = 0.5,
    ) -> list[LiveVehicle]:
        """Vehicles inside the padded viewport; nothing when no viewport is known."""
        if bounds is None:
            return []
        padded = bounds.pad(padding)
        area = box(padded.west, padded.south, padded.east, padded.north)
        return [v for v in vehicles if area.covers(Point(v.lng, v.lat))]
