import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sl_tracker.models.base import Base


class Stop(Base):
    __tablename__ = "stops"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)  # lowercased name
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)


class Route(Base):
    """One manifest entry per published route."""

    __tablename__ = "routes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    line: Mapped[str] = mapped_column(String(32), nullable=False)
    line_key: Mapped[str] = mapped_column(String(32), nullable=False, index=True)  # lowercased line
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    from_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    to_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class Trip(Base):
    __tablename__ = "trips"

    trip_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    route_id: Mapped[str] = mapped_column(String(64), nullable=False)
    headsign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    format_version: Mapped[int] = mapped_column(Integer, nullable=False, default=2)


class RouteDirection(Base):
    __tablename__ = "route_directions"

    route_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    direction_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    headsign: Mapped[str] = mapped_column(String(255), nullable=False)


class DataCacheMeta(Base):
    __tablename__ = "data_cache_meta"

    cache_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    refreshed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
