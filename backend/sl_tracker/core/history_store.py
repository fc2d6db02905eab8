"""Per-trip position trails in Redis with a sliding expiry window."""

import datetime
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass

import orjson
import redis.asyncio as aioredis

from sl_tracker.schemas.history import BulkWriteResult, HistoryPoint

logger = logging.getLogger(__name__)

TRAIL_KEY = "trail:{trip_id}"
META_KEY = "trail:{trip_id}:meta"
# Commands queued per sample: RPUSH, HSET, PEXPIREAT x2
_COMMANDS_PER_SAMPLE = 4


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TrailSample:
    trip_id: str | None
    route_id: str | None
    vehicle_id: str | None
    lat: float | None
    lng: float | None


class HistoryStore:
    """Appends positions under their trip id and replays them as a sorted trail.

    Every append pushes the trail's expiry to ``now + window``; Redis deletes
    trails that stop receiving points.
    """

    def __init__(self, redis: aioredis.Redis, clock=_now_ms) -> None:
        self._redis = redis
        self._clock = clock

    def _queue_append(self, pipe, trip_id: str, route_id, vehicle_id, point: HistoryPoint,
                      expire_at: int) -> None:
        trail_key = TRAIL_KEY.format(trip_id=trip_id)
        meta_key = META_KEY.format(trip_id=trip_id)
        pipe.rpush(trail_key, orjson.dumps(point.model_dump()))
        pipe.hset(meta_key, mapping={
            "route_id": route_id or "",
            "vehicle_id": vehicle_id or "",
            "last_update": point.ts,
            "expire_at": expire_at,
        })
        pipe.pexpireat(trail_key, expire_at)
        pipe.pexpireat(meta_key, expire_at)

    async def append(
        self,
        trip_id: str,
        route_id: str | None,
        vehicle_id: str | None,
        point: HistoryPoint,
        window: datetime.timedelta,
    ) -> None:
        """Upsert the trail for ``trip_id`` and extend its expiry."""
        expire_at = self._clock() + int(window.total_seconds() * 1000)
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_append(pipe, trip_id, route_id, vehicle_id, point, expire_at)
            await pipe.execute()

    async def append_many(
        self, samples: Iterable[TrailSample], window: datetime.timedelta
    ) -> BulkWriteResult:
        """Best-effort batch append; a failing sample does not abort the others."""
        now = self._clock()
        expire_at = now + int(window.total_seconds() * 1000)
        result = BulkWriteResult()
        queued: list[TrailSample] = []

        async with self._redis.pipeline(transaction=False) as pipe:
            for s in samples:
                if not s.trip_id or s.lat is None or s.lng is None:
                    result.skipped += 1
                    continue
                point = HistoryPoint(lat=s.lat, lng=s.lng, ts=now)
                self._queue_append(pipe, s.trip_id, s.route_id, s.vehicle_id, point, expire_at)
                queued.append(s)
            if not queued:
                return result
            replies = await pipe.execute(raise_on_error=False)

        result.submitted = len(queued)
        for i, sample in enumerate(queued):
            chunk = replies[i * _COMMANDS_PER_SAMPLE:(i + 1) * _COMMANDS_PER_SAMPLE]
            errors = [r for r in chunk if isinstance(r, Exception)]
            if errors:
                result.failed += 1
                logger.warning("History append failed for trip %s: %s", sample.trip_id, errors[0])
            elif chunk[0] == 1:
                result.upserted += 1
            else:
                result.modified += 1
        logger.debug(
            "History batch: %d submitted, %d new, %d extended, %d failed, %d skipped",
            result.submitted, result.upserted, result.modified, result.failed, result.skipped,
        )
        return result

    async def read(self, trip_id: str) -> list[HistoryPoint]:
        """Trail points for ``trip_id`` sorted by timestamp; empty once expired."""
        trail_key = TRAIL_KEY.format(trip_id=trip_id)
        meta_key = META_KEY.format(trip_id=trip_id)
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.hget(meta_key, "expire_at")
            pipe.lrange(trail_key, 0, -1)
            expire_at, raw_points = await pipe.execute()

        if expire_at is None or int(expire_at) <= self._clock():
            return []
        points = [HistoryPoint(**orjson.loads(raw)) for raw in raw_points]
        points.sort(key=lambda p: p.ts)
        return points
