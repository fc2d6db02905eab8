"""Line and stop search over the cached static catalog."""

import asyncio
import logging
import math

from sqlalchemy import select

from sl_tracker.models.tables import Route, Stop
from sl_tracker.schemas.catalog import LineRoute
from sl_tracker.schemas.search import SearchResult

logger = logging.getLogger(__name__)

MAX_LINE_RESULTS = 10
MAX_STOP_RESULTS = 10
MAX_MERGED_RESULTS = 15
# Same-named stops closer than this are treated as platforms of one stop
DUPLICATE_STOP_RADIUS_M = 500


def _haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two lat/lon points."""
    R = 6_371_000
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    return R * 2 * math.asin(math.sqrt(a))


class SearchIndex:
    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    async def search_lines(self, prefix: str) -> list[SearchResult]:
        """Case-insensitive prefix match on line short names, in line order."""
        q = prefix.strip().lower()
        if not q:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(Route)
                .where(Route.line_key.startswith(q, autoescape=True))
                .order_by(Route.line_key, Route.id)
                .limit(MAX_LINE_RESULTS)
            )
            routes = result.scalars().all()
        return [
            SearchResult(
                type="line", id=r.id, title=f"Line {r.line}",
                subtitle=f"{r.from_name} - {r.to_name}",
            )
            for r in routes
        ]

    async def search_stops(self, substring: str, dedupe: bool = True) -> list[SearchResult]:
        """Case-insensitive substring match on stop names, in name order.

        With ``dedupe`` a stop within 500 m of an already returned stop of the
        same name is skipped.
        """
        q = substring.strip().lower()
        if not q:
            return []
        async with self.session_factory() as session:
            stops = await session.stream_scalars(
                select(Stop)
                .where(Stop.name_key.contains(q, autoescape=True))
                .order_by(Stop.name_key, Stop.id)
            )
            results: list[SearchResult] = []
            seen: dict[str, list[tuple[float, float]]] = {}
            async for stop in stops:
                if dedupe:
                    nearby = seen.setdefault(stop.name, [])
                    if any(_haversine(lat, lng, stop.lat, stop.lng) < DUPLICATE_STOP_RADIUS_M
                           for lat, lng in nearby):
                        continue
                    nearby.append((stop.lat, stop.lng))
                results.append(SearchResult(type="stop", id=stop.id, title=stop.name, subtitle="Stop"))
                if len(results) >= MAX_STOP_RESULTS:
                    break
            await stops.close()
        return results

    async def search(self, query: str, active_route: LineRoute | None = None) -> list[SearchResult]:
        """Lines first, then stops; scoped to the active route's stops when given."""
        q = query.strip().lower()
        if not q:
            return []

        if active_route is not None:
            stop_results = [
                SearchResult(
                    type="stop", id=s.id, title=s.name,
                    subtitle=f"On line {active_route.line}",
                )
                for s in active_route.stops
                if q in s.name.lower()
            ]
            line_results = await self.search_lines(q)
            return (line_results + stop_results)[:MAX_MERGED_RESULTS]

        line_results, stop_results = await asyncio.gather(
            self.search_lines(q),
            self.search_stops(q),
        )
        return (line_results + stop_results)[:MAX_MERGED_RESULTS]
