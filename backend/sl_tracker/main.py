"""FastAPI application entry point."""

import datetime
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from sl_tracker.api import history, lines, search, stops, vehicles
from sl_tracker.config import settings
from sl_tracker.core.errors import ConfigurationError
from sl_tracker.core.feed_decoder import FeedDecoder
from sl_tracker.core.history_ingestor import HistoryIngestor
from sl_tracker.core.history_store import HistoryStore
from sl_tracker.core.http_client import ExtractClient, FeedClient
from sl_tracker.core.scheduler import create_scheduler
from sl_tracker.core.search_index import SearchIndex
from sl_tracker.core.static_catalog import StaticCatalog
from sl_tracker.core.vehicle_tracker import VehicleTracker
from sl_tracker.db.session import async_session, engine, init_models

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    if not settings.rt_api_key:
        raise ConfigurationError("RT_API_KEY is not configured")

    await init_models(engine)

    # Initialize services
    feed = FeedClient(settings.rt_api_key)
    extract = ExtractClient()
    redis = aioredis.from_url(settings.redis_url, decode_responses=False)
    decoder = FeedDecoder()

    catalog = StaticCatalog(extract, async_session)
    history_store = HistoryStore(redis)
    tracker = VehicleTracker(feed, decoder, catalog)
    ingestor = HistoryIngestor(
        feed, decoder, history_store,
        window=datetime.timedelta(minutes=settings.history_window_minutes),
        catalog=catalog,
    )

    # Wire up API modules
    vehicles.tracker = tracker
    vehicles.catalog = catalog
    lines.catalog = catalog
    stops.catalog = catalog
    search.catalog = catalog
    search.search_index = SearchIndex(async_session)
    history.history = history_store
    app.state.tracker = tracker
    app.state.catalog = catalog

    # Stale or missing static data degrades to whatever is cached
    await catalog.refresh_if_stale(datetime.timedelta(hours=settings.static_cache_max_age_hours))

    scheduler = create_scheduler(tracker, ingestor, catalog)
    scheduler.start()
    logger.info("SL Tracker started - polling Trafiklab every %ss", settings.poll_interval_seconds)

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    await feed.close()
    await extract.close()
    await redis.aclose()
    await engine.dispose()
    logger.info("SL Tracker shut down")


app = FastAPI(
    title="SL Live Vehicle Tracker",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(vehicles.router)
app.include_router(lines.router)
app.include_router(stops.router)
app.include_router(search.router)
app.include_router(history.router)

# Serve a locally built extract (see sl_tracker.tools.build_extract)
if settings.static_data_dir and Path(settings.static_data_dir).is_dir():
    app.mount("/data", StaticFiles(directory=settings.static_data_dir), name="data")


@app.get("/api/health")
async def health():
    tracker = getattr(app.state, "tracker", None)
    catalog = getattr(app.state, "catalog", None)
    return {
        "status": "ok",
        "live": "degraded" if tracker is None or tracker.degraded else "ok",
        "catalog_stale": bool(catalog and catalog.stale),
    }
