"""Trip history read and ingest endpoints."""

import datetime
import logging

from fastapi import APIRouter, HTTPException
from redis.exceptions import RedisError

from sl_tracker.config import settings
from sl_tracker.core.history_store import TrailSample
from sl_tracker.schemas.history import BulkWriteResult, HistoryPath, IngestRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["history"])

# Will be set by main.py
history = None


@router.get("/history", response_model=HistoryPath)
async def get_history(tripId: str | None = None):
    """Position trail for a trip, oldest point first."""
    if not tripId:
        raise HTTPException(status_code=400, detail="Missing tripId")
    if history is None:
        return HistoryPath(path=[])
    try:
        points = await history.read(tripId)
    except RedisError:
        logger.exception("History fetch failed for trip %s", tripId)
        return HistoryPath(path=[])
    return HistoryPath(path=points)


@router.post("/ingest")
async def ingest(body: IngestRequest):
    """Append a batch of client-side vehicles to their trip trails."""
    if not body.vehicles:
        return {"message": "No data"}
    samples = [
        TrailSample(trip_id=v.trip_id, route_id=v.line, vehicle_id=v.id, lat=v.lat, lng=v.lng)
        for v in body.vehicles
        if isinstance(v.trip_id, str) and v.trip_id
    ]
    if not samples:
        return {"message": "No valid vehicles found"}
    if history is None:
        raise HTTPException(status_code=503, detail="History store not configured")
    try:
        result: BulkWriteResult = await history.append_many(
            samples, datetime.timedelta(minutes=settings.ingest_window_minutes),
        )
    except RedisError:
        logger.exception("Ingest failed")
        raise HTTPException(status_code=500, detail="Database error")
    return {"success": True, **result.model_dump()}
