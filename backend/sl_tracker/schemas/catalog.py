from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Stop(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    name: str
    lat: float
    lng: float


class RouteManifestEntry(BaseModel):
    """Summary of one published route, taken from its most representative trip."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    line: str
    description: str = ""
    from_name: str = Field(default="", alias="from")
    to_name: str = Field(default="", alias="to")


class LineRoute(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    line: str
    description: str = ""
    trip_ids: frozenset[str] = frozenset()
    path: tuple[tuple[float, float], ...] = ()  # ((lat, lng), ...)
    stops: tuple[Stop, ...] = ()


class TripMapEntry(BaseModel):
    """Static context for a trip id, normalized from every trip-map file format.

    Version 1 files map ``tripId -> routeId``; version 2 files map
    ``tripId -> {routeId, headsign}`` (compact ``{r, h}`` keys are accepted too).
    """

    model_config = ConfigDict(frozen=True)

    route_id: str
    headsign: str | None = None
    format_version: int = 2

    @classmethod
    def from_raw(cls, raw: Any) -> "TripMapEntry | None":
        if isinstance(raw, str):
            return cls(route_id=raw, headsign=None, format_version=1) if raw else None
        if isinstance(raw, dict):
            route_id = raw.get("routeId", raw.get("route_id", raw.get("r")))
            headsign = raw.get("headsign", raw.get("h"))
            if not route_id:
                return None
            return cls(
                route_id=str(route_id),
                headsign=str(headsign) if headsign else None,
                format_version=2,
            )
        return None


class LineBounds(BaseModel):
    south: float
    west: float
    north: float
    east: float


class LineDetail(BaseModel):
    """A line with the box that frames it on the map."""

    route: LineRoute
    bounds: LineBounds | None = None
