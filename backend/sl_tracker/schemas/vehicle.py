from pydantic import BaseModel, ConfigDict


class LiveVehicle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    line: str  # resolved route id, never empty
    trip_id: str
    vehicle_number: str
    lat: float
    lng: float
    bearing: float
    speed_kmh: float
    destination: str
    delay_seconds: int | None = None
    vehicle_kind: str = "bus"


class VehicleList(BaseModel):
    seq: int
    degraded: bool
    count: int
    vehicles: list[LiveVehicle]


class FoundVehicle(BaseModel):
    vehicle: LiveVehicle
    route_id: str
