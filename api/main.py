"""
FastAPI application for the transit realtime merge API

Serves vehicle positions merged with trip updates and enriched with
route, stop and icon data from the static reference tables.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.feed_decoder import parse_feed, trip_update_entities, vehicle_entities
from src.merger import merge_feeds
from src.reference_tables import ReferenceTables, load_reference_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and reference tables once for the process lifetime"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # ReferenceLoadError propagates and aborts startup
    app.state.settings = settings
    app.state.reference_tables = load_reference_tables(settings)
    logger.info("Reference tables ready: %s", app.state.reference_tables.row_counts())
    yield


# Create FastAPI app
app = FastAPI(
    title="Transit Realtime Merge API",
    description="GTFS-Realtime vehicle positions merged with trip updates",
    version="1.0.0",
    lifespan=lifespan,
)

# Enable CORS for browser map clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_reference_tables(request: Request) -> ReferenceTables:
    return request.app.state.reference_tables


async def fetch_feeds(settings: Settings):
    """Fetch and decode both feeds concurrently"""
    return await asyncio.gather(
        run_in_threadpool(
            parse_feed,
            settings.vehicle_positions_url,
            is_local=settings.feed_source_local,
            timeout=settings.feed_timeout,
        ),
        run_in_threadpool(
            parse_feed,
            settings.trip_updates_url,
            is_local=settings.feed_source_local,
            timeout=settings.feed_timeout,
        ),
    )


@app.get("/")
async def get_vehicles(
    settings: Settings = Depends(get_app_settings),
    tables: ReferenceTables = Depends(get_reference_tables),
):
    """
    Get enriched vehicle records

    Fetches both realtime feeds, joins each vehicle position to its trip
    update and adds route short name, destination, stop names and icon.

    Returns:
        List of enriched records (empty if either feed is unavailable)
    """
    vehicle_feed, trip_feed = await fetch_feeds(settings)
    return merge_feeds(vehicle_entities(vehicle_feed), trip_update_entities(trip_feed), tables)


@app.get("/health")
async def health(tables: ReferenceTables = Depends(get_reference_tables)):
    """Health check with loaded reference table sizes"""
    return {"status": "ok", "name": app.title, "version": app.version, "tables": tables.row_counts()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3000)
