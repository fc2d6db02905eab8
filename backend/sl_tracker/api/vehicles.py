"""Live vehicle REST API endpoints."""

from fastapi import APIRouter, HTTPException, Query

from sl_tracker.config import settings
from sl_tracker.core.region_filter import Bounds, RegionFilter
from sl_tracker.schemas.vehicle import FoundVehicle, VehicleList

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])

# Will be set by main.py
tracker = None
catalog = None

region_filter = RegionFilter()


@router.get("", response_model=VehicleList)
async def list_vehicles(
    south: float | None = None,
    west: float | None = None,
    north: float | None = None,
    east: float | None = None,
    padding: float | None = None,
    route: str | None = None,
    show_all: bool = Query(False, alias="all"),
):
    """Vehicles of the latest snapshot inside the (padded) viewport.

    With ``route`` and without ``all`` only that route's vehicles are kept.
    """
    if tracker is None:
        return VehicleList(seq=0, degraded=True, count=0, vehicles=[])
    snapshot = tracker.snapshot
    vehicles = list(snapshot.vehicles)

    if route and not show_all and catalog is not None:
        line_route = await catalog.get_line_route(route)
        if line_route is not None:
            vehicles = region_filter.filter_by_route(vehicles, line_route)
        else:
            vehicles = [v for v in vehicles if v.line == route]

    bounds = None
    if None not in (south, west, north, east):
        bounds = Bounds.from_corners([(south, west), (north, east)])
    vehicles = region_filter.filter_by_bounds(
        vehicles, bounds, settings.bounds_padding if padding is None else padding,
    )
    return VehicleList(
        seq=snapshot.seq, degraded=tracker.degraded, count=len(vehicles), vehicles=vehicles,
    )


@router.get("/find/{number}", response_model=FoundVehicle)
async def find_vehicle(number: str):
    """Find a vehicle in service by its number."""
    found = tracker.find_vehicle(number) if tracker else None
    if found is None:
        raise HTTPException(status_code=404, detail="Vehicle not in service")
    vehicle, route_id = found
    return FoundVehicle(vehicle=vehicle, route_id=route_id)
