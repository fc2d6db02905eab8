"""Stop REST API endpoints."""

from fastapi import APIRouter, HTTPException

from sl_tracker.schemas.catalog import Stop

router = APIRouter(prefix="/api/stops", tags=["stops"])

# Will be set by main.py
catalog = None


@router.get("/{stop_id}", response_model=Stop)
async def get_stop(stop_id: str):
    stop = await catalog.get_stop(stop_id) if catalog else None
    if stop is None:
        raise HTTPException(status_code=404, detail="Stop not found")
    return stop
