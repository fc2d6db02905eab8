"""Line REST API endpoints."""

from fastapi import APIRouter, HTTPException

from sl_tracker.core.region_filter import Bounds
from sl_tracker.schemas.catalog import LineBounds, LineDetail, RouteManifestEntry

router = APIRouter(prefix="/api/lines", tags=["lines"])

# Will be set by main.py
catalog = None


@router.get("", response_model=list[RouteManifestEntry])
async def list_lines():
    """Get the route manifest."""
    if catalog is None:
        return []
    return await catalog.get_manifest()


@router.get("/{route_id}", response_model=LineDetail)
async def get_line(route_id: str):
    """Get one line's trips, path and stops, plus the box that frames it."""
    line_route = await catalog.get_line_route(route_id) if catalog else None
    if line_route is None:
        raise HTTPException(status_code=404, detail="Line not found")
    box = Bounds.of_path(line_route.path or [(s.lat, s.lng) for s in line_route.stops])
    bounds = LineBounds(south=box.south, west=box.west, north=box.north, east=box.east) if box else None
    return LineDetail(route=line_route, bounds=bounds)
