"""Static schedule catalog: extract download, local cache and in-memory lookups."""

import asyncio
import datetime
import logging
import warnings
from dataclasses import dataclass, field

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError

from sl_tracker.core.errors import StaleDataWarning, UpstreamError
from sl_tracker.core.http_client import ExtractClient
from sl_tracker.models.tables import DataCacheMeta, Route, RouteDirection, Stop as StopRow, Trip
from sl_tracker.schemas.catalog import LineRoute, RouteManifestEntry, Stop, TripMapEntry

logger = logging.getLogger(__name__)

CACHE_KEY = "static_extract"

_stops_adapter = TypeAdapter(list[Stop])
_manifest_adapter = TypeAdapter(list[RouteManifestEntry])
_directions_adapter = TypeAdapter(dict[str, dict[int, str]])


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class StaticExtract:
    manifest: list[RouteManifestEntry]
    stops: list[Stop]
    trips: dict[str, TripMapEntry]
    route_directions: dict[str, dict[int, str]] = field(default_factory=dict)


def parse_trip_map(raw: dict) -> dict[str, TripMapEntry]:
    """Normalize either trip-map file format; entries without a route are dropped."""
    if not isinstance(raw, dict):
        raise ValueError(f"trip map must be an object, got {type(raw).__name__}")
    trips = {}
    for trip_id, value in raw.items():
        entry = TripMapEntry.from_raw(value)
        if entry is not None:
            trips[str(trip_id)] = entry
    return trips


class StaticCatalog:
    """Loads the static extract into local storage and answers lookups.

    Resolution lookups (trip map, direction headsigns, stop names) are served
    synchronously from memory; manifest and stop reads go to the database.
    """

    def __init__(
        self,
        extract: ExtractClient,
        session_factory,
        clock=_utcnow,
    ) -> None:
        self.extract = extract
        self.session_factory = session_factory
        self._clock = clock

        self._trips: dict[str, TripMapEntry] = {}
        self._route_directions: dict[str, dict[int, str]] = {}
        self._stop_names: dict[str, str] = {}
        # route_id -> LineRoute, filled on demand
        self._line_routes: dict[str, LineRoute] = {}

        self._refresh_task: asyncio.Task | None = None
        self.refreshed_at: datetime.datetime | None = None
        self.stale = False

    # --- refresh ---

    async def refresh_if_stale(self, max_age: datetime.timedelta) -> bool:
        """Refresh from the extract when the cache is missing or older than max_age.

        Concurrent callers share one in-flight refresh. Returns True when new
        data was fetched.
        """
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh_if_stale(max_age))
            self._refresh_task = task
            task.add_done_callback(self._clear_refresh_task)
        return await asyncio.shield(task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh_if_stale(self, max_age: datetime.timedelta) -> bool:
        now = self._clock()
        refreshed_at = await self._load_cache_timestamp()
        if refreshed_at is not None and now - refreshed_at <= max_age:
            self.refreshed_at = refreshed_at
            await self._load_index()
            return False

        try:
            extract = await self._fetch_extract()
        except (UpstreamError, ValidationError, ValueError) as e:
            message = f"Static extract refresh failed, serving cached data: {e}"
            logger.warning(message)
            warnings.warn(StaleDataWarning(message), stacklevel=2)
            self.stale = True
            await self._load_index()
            return False

        await self._replace_tables(extract, now)
        self._apply_index(extract)
        self._line_routes.clear()
        self.refreshed_at = now
        self.stale = False
        logger.info(
            "Loaded static extract: %d routes, %d stops, %d trips",
            len(extract.manifest), len(extract.stops), len(extract.trips),
        )
        return True

    async def _fetch_extract(self) -> StaticExtract:
        manifest_raw, stops_raw, trips_raw, directions_raw = await asyncio.gather(
            self.extract.fetch_manifest(),
            self.extract.fetch_stops(),
            self.extract.fetch_trip_map(),
            self.extract.fetch_route_directions(),
        )
        return StaticExtract(
            manifest=_manifest_adapter.validate_python(manifest_raw),
            stops=_stops_adapter.validate_python(stops_raw),
            trips=parse_trip_map(trips_raw),
            route_directions=_directions_adapter.validate_python(directions_raw),
        )

    async def _replace_tables(self, extract: StaticExtract, now: datetime.datetime) -> None:
        """Swap all catalog tables in a single transaction."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for table in (StopRow, Route, Trip, RouteDirection):
                        await session.execute(delete(table))
                    if extract.stops:
                        await session.execute(insert(StopRow), [
                            {"id": s.id, "name": s.name, "name_key": s.name.lower(),
                             "lat": s.lat, "lng": s.lng}
                            for s in extract.stops
                        ])
                    if extract.manifest:
                        await session.execute(insert(Route), [
                            {"id": r.id, "line": r.line, "line_key": r.line.lower(),
                             "description": r.description, "from_name": r.from_name,
                             "to_name": r.to_name}
                            for r in extract.manifest
                        ])
                    if extract.trips:
                        await session.execute(insert(Trip), [
                            {"trip_id": trip_id, "route_id": e.route_id,
                             "headsign": e.headsign, "format_version": e.format_version}
                            for trip_id, e in extract.trips.items()
                        ])
                    directions = [
                        {"route_id": route_id, "direction_id": direction_id, "headsign": headsign}
                        for route_id, by_dir in extract.route_directions.items()
                        for direction_id, headsign in by_dir.items()
                    ]
                    if directions:
                        await session.execute(insert(RouteDirection), directions)
                    existing = await session.get(DataCacheMeta, CACHE_KEY)
                    if existing:
                        existing.refreshed_at = now
                    else:
                        session.add(DataCacheMeta(cache_key=CACHE_KEY, refreshed_at=now))
        except SQLAlchemyError:
            logger.exception("Failed to persist static extract; using it from memory only")

    async def _load_cache_timestamp(self) -> datetime.datetime | None:
        try:
            async with self.session_factory() as session:
                meta = await session.get(DataCacheMeta, CACHE_KEY)
                if meta is None:
                    return None
                ts = meta.refreshed_at
                if ts.tzinfo is None:
                    ts = ts.replace(tzinfo=datetime.timezone.utc)
                return ts
        except SQLAlchemyError:
            logger.exception("Failed to read static cache timestamp")
            return None

    async def _load_index(self) -> None:
        """Load the in-memory resolution index from the local cache."""
        try:
            async with self.session_factory() as session:
                stops = await session.execute(select(StopRow.id, StopRow.name))
                trips = await session.execute(select(Trip))
                directions = await session.execute(select(RouteDirection))
                self._stop_names = {row.id: row.name for row in stops}
                self._trips = {
                    t.trip_id: TripMapEntry(
                        route_id=t.route_id, headsign=t.headsign, format_version=t.format_version,
                    )
                    for t in trips.scalars()
                }
                route_directions: dict[str, dict[int, str]] = {}
                for d in directions.scalars():
                    route_directions.setdefault(d.route_id, {})[d.direction_id] = d.headsign
                self._route_directions = route_directions
        except SQLAlchemyError:
            logger.exception("Failed to load static index from local cache")
            return
        logger.info(
            "Loaded static index from cache: %d stops, %d trips",
            len(self._stop_names), len(self._trips),
        )

    def _apply_index(self, extract: StaticExtract) -> None:
        self._stop_names = {s.id: s.name for s in extract.stops}
        self._trips = dict(extract.trips)
        self._route_directions = {k: dict(v) for k, v in extract.route_directions.items()}

    # --- resolution lookups (in-memory) ---

    def get_trip_map_entry(self, trip_id: str) -> TripMapEntry | None:
        return self._trips.get(trip_id)

    def get_route_direction_headsign(self, route_id: str, direction_id: int | None) -> str | None:
        if direction_id is None:
            return None
        return self._route_directions.get(route_id, {}).get(direction_id)

    def get_stop_name(self, stop_id: str | None) -> str | None:
        if not stop_id:
            return None
        return self._stop_names.get(stop_id)

    # --- catalog reads ---

    async def get_stop(self, stop_id: str) -> Stop | None:
        async with self.session_factory() as session:
            row = await session.get(StopRow, stop_id)
        if row is None:
            return None
        return Stop(id=row.id, name=row.name, lat=row.lat, lng=row.lng)

    async def get_manifest(self) -> list[RouteManifestEntry]:
        async with self.session_factory() as session:
            result = await session.execute(select(Route))
            routes = result.scalars().all()
        return [
            RouteManifestEntry(
                id=r.id, line=r.line, description=r.description,
                from_name=r.from_name, to_name=r.to_name,
            )
            for r in routes
        ]

    async def get_line_route(self, route_id: str) -> LineRoute | None:
        """Fetch one route's geometry, trips and stops on demand (cached per route)."""
        cached = self._line_routes.get(route_id)
        if cached is not None:
            return cached
        try:
            data = await self.extract.fetch_line(route_id)
        except UpstreamError as e:
            logger.warning("Could not fetch line %s: %s", route_id, e)
            return None
        if data is None:
            return None
        try:
            line_route = LineRoute.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed line file for %s: %s", route_id, e)
            return None
        self._line_routes[route_id] = line_route
        return line_route
