"""Live poller: fetches the realtime feed, resolves vehicles, publishes snapshots."""

import asyncio
import datetime
import itertools
import logging
from dataclasses import dataclass

from sl_tracker.core.errors import DecodeError, UpstreamError
from sl_tracker.core.feed_decoder import DecodedTripUpdate, DecodedVehiclePosition, FeedDecoder
from sl_tracker.core.http_client import FeedClient
from sl_tracker.core.static_catalog import StaticCatalog
from sl_tracker.core.vehicle_resolver import VehicleResolver
from sl_tracker.schemas.vehicle import LiveVehicle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveSnapshot:
    """Immutable result of one poll tick."""

    seq: int
    vehicles: tuple[LiveVehicle, ...] = ()
    positions: tuple[DecodedVehiclePosition, ...] = ()
    trip_updates: tuple[DecodedTripUpdate, ...] = ()
    fetched_at: datetime.datetime | None = None
    partial: bool = False  # resolved without trip updates


class VehicleTracker:
    """Orchestrates the live vehicle pipeline.

    Ticks may overlap. Each tick takes a sequence number when it starts and its
    snapshot is adopted only if no later tick has been adopted already.
    """

    def __init__(
        self,
        feed: FeedClient,
        decoder: FeedDecoder,
        catalog: StaticCatalog,
        resolver: VehicleResolver | None = None,
    ) -> None:
        self.feed = feed
        self.decoder = decoder
        self.catalog = catalog
        self.resolver = resolver or VehicleResolver()

        self._tick_seq = itertools.count(1)
        self._adopted_seq = 0
        self.snapshot = LiveSnapshot(seq=0)
        # True while live data is missing or incomplete
        self.degraded = False

    @property
    def vehicles(self) -> tuple[LiveVehicle, ...]:
        return self.snapshot.vehicles

    async def poll_vehicles(self) -> bool:
        """Single poll cycle. Returns True when a new snapshot was adopted."""
        seq = next(self._tick_seq)
        positions_raw, updates_raw = await asyncio.gather(
            self.feed.fetch_vehicle_positions(),
            self.feed.fetch_trip_updates(),
            return_exceptions=True,
        )

        if isinstance(positions_raw, BaseException):
            if not isinstance(positions_raw, UpstreamError):
                raise positions_raw
            logger.warning("Tick %d: vehicle positions unavailable (%s), keeping previous set", seq, positions_raw)
            self._mark_degraded(seq)
            return False

        try:
            positions = self.decoder.decode_vehicle_positions(positions_raw)
        except DecodeError as e:
            logger.warning("Tick %d: %s, keeping previous set", seq, e)
            self._mark_degraded(seq)
            return False

        partial = False
        trip_updates: list[DecodedTripUpdate] = []
        if isinstance(updates_raw, BaseException):
            if not isinstance(updates_raw, UpstreamError):
                raise updates_raw
            logger.warning("Tick %d: trip updates unavailable (%s)", seq, updates_raw)
            partial = True
        else:
            try:
                trip_updates = self.decoder.decode_trip_updates(updates_raw)
            except DecodeError as e:
                logger.warning("Tick %d: %s", seq, e)
                partial = True

        vehicles = self.resolver.resolve(positions, trip_updates, self.catalog)
        snapshot = LiveSnapshot(
            seq=seq,
            vehicles=tuple(vehicles),
            positions=tuple(positions),
            trip_updates=tuple(trip_updates),
            fetched_at=datetime.datetime.now(datetime.timezone.utc),
            partial=partial,
        )
        return self._adopt(snapshot)

    def _mark_degraded(self, seq: int) -> None:
        # A failed tick older than the adopted snapshot says nothing about current data
        if seq > self._adopted_seq:
            self.degraded = True

    def _adopt(self, snapshot: LiveSnapshot) -> bool:
        if snapshot.seq <= self._adopted_seq:
            logger.debug(
                "Discarding tick %d, tick %d already adopted", snapshot.seq, self._adopted_seq,
            )
            return False
        self._adopted_seq = snapshot.seq
        self.snapshot = snapshot
        self.degraded = snapshot.partial
        logger.info("Tick %d: %d live vehicles", snapshot.seq, len(snapshot.vehicles))
        return True

    def find_vehicle(self, number: str) -> tuple[LiveVehicle, str] | None:
        """Look up a vehicle by number in the latest adopted positions."""
        snapshot = self.snapshot
        return self.resolver.find_vehicle(
            number, snapshot.positions, snapshot.trip_updates, self.catalog,
        )
