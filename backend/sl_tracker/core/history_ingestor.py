"""Scheduled producer that writes realtime positions into the history store."""

import datetime
import logging

from redis.exceptions import RedisError

from sl_tracker.core.errors import DecodeError, UpstreamError
from sl_tracker.core.feed_decoder import FeedDecoder
from sl_tracker.core.history_store import HistoryStore, TrailSample
from sl_tracker.core.http_client import FeedClient
from sl_tracker.schemas.history import BulkWriteResult

logger = logging.getLogger(__name__)


class HistoryIngestor:
    def __init__(
        self,
        feed: FeedClient,
        decoder: FeedDecoder,
        history: HistoryStore,
        window: datetime.timedelta,
        catalog=None,
    ) -> None:
        self.feed = feed
        self.decoder = decoder
        self.history = history
        self.window = window
        self.catalog = catalog

    async def run_once(self) -> BulkWriteResult | None:
        """Fetch one positions snapshot and append it to the trails."""
        try:
            payload = await self.feed.fetch_vehicle_positions()
            positions = self.decoder.decode_vehicle_positions(payload)
        except (UpstreamError, DecodeError) as e:
            logger.warning("History ingest skipped: %s", e)
            return None

        samples = []
        for pos in positions:
            if not pos.trip_id:
                continue
            route_id = pos.route_id
            if not route_id and self.catalog is not None:
                entry = self.catalog.get_trip_map_entry(pos.trip_id)
                route_id = entry.route_id if entry else None
            samples.append(TrailSample(
                trip_id=pos.trip_id,
                route_id=route_id,
                vehicle_id=pos.vehicle_id or pos.entity_id,
                lat=pos.lat,
                lng=pos.lon,
            ))

        if not samples:
            logger.info("History ingest: no valid vehicles in feed")
            return BulkWriteResult()

        try:
            result = await self.history.append_many(samples, self.window)
        except RedisError:
            logger.exception("History ingest failed to reach the store")
            return None
        logger.info(
            "History ingest: %d saved (%d new, %d extended, %d failed)",
            result.submitted, result.upserted, result.modified, result.failed,
        )
        return result
