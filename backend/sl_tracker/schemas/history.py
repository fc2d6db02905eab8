from pydantic import BaseModel, ConfigDict, Field


class HistoryPoint(BaseModel):
    lat: float
    lng: float
    ts: int  # epoch milliseconds


class HistoryPath(BaseModel):
    path: list[HistoryPoint] = []


class BulkWriteResult(BaseModel):
    submitted: int = 0
    upserted: int = 0  # trails created by this batch
    modified: int = 0  # existing trails extended
    failed: int = 0
    skipped: int = 0  # samples without trip id or coordinates


class IngestVehicle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    trip_id: str | int | float | None = Field(default=None, alias="tripId")  # only strings are stored
    line: str | None = None
    lat: float | None = None
    lng: float | None = None


class IngestRequest(BaseModel):
    vehicles: list[IngestVehicle] = []
