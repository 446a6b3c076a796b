import asyncio
import json
import logging
import random

import redis.asyncio as redis
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civiclens.analysis.agent import AnalysisConfig, AnalysisOrchestrator
from civiclens.analysis.hotspots import HotspotClusterer
from civiclens.core.config import settings
from civiclens.core.database import AsyncSessionLocal, init_models
from civiclens.core.events import ChangeFeed
from civiclens.core.exceptions import InvalidContentError, NotFoundError, StoreUnavailableError
from civiclens.core.websocket import manager
from civiclens.routers import analytics, hotspots, reports
from civiclens.services.analytics import AnalyticsService
from civiclens.services.hotspots import HotspotService
from civiclens.services.reports import ReportService
from civiclens.stores.blob import MinioBlobStore
from civiclens.stores.sql import SqlAnalysisLog, SqlEventLog, SqlHotspotStore, SqlReportStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CivicLens API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports.router)
app.include_router(hotspots.router)
app.include_router(analytics.router)

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

@app.exception_handler(InvalidContentError)
async def invalid_content_handler(request: Request, exc: InvalidContentError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error("Store unavailable while serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Storage temporarily unavailable"})

redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
background_tasks = set()

def build_services(
    report_store,
    analysis_log,
    hotspot_store,
    event_log,
    blob_store,
    config: AnalysisConfig,
    rng: random.Random = None,
):
    """Wire stores into the services the routers use."""
    orchestrator = AnalysisOrchestrator(report_store, analysis_log, event_log, config=config, rng=rng)
    clusterer = HotspotClusterer(report_store, hotspot_store, event_log, max_age_days=settings.HOTSPOT_MAX_AGE_DAYS)
    return (
        ReportService(report_store, analysis_log, event_log, blob_store, orchestrator),
        HotspotService(hotspot_store, clusterer),
        AnalyticsService(report_store, analysis_log, hotspot_store, event_log),
    )

async def redis_listener():
    """Relay report changes published by any API worker to our websocket clients."""
    pubsub = redis_client.pubsub()
    try:
        await pubsub.subscribe(settings.REDIS_CHANNEL)
        async for message in pubsub.listen():
            if message["type"] == "message":
                await manager.broadcast(json.loads(message["data"]))
    except redis.ConnectionError:
        logger.exception("Lost the Redis subscription on %s, websocket updates stopped", settings.REDIS_CHANNEL)

def start_background(coro):
    task = asyncio.create_task(coro)
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)
    return task

async def stop_background():
    """Cancel the background loops and wait until they have unwound."""
    tasks = list(background_tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

@app.on_event("startup")
async def startup():
    await init_models()

    store_options = {"retries": settings.STORE_RETRIES, "backoff": settings.STORE_BACKOFF_SECONDS}
    feed = ChangeFeed(redis_client, channel=settings.REDIS_CHANNEL)
    blob_store = MinioBlobStore.from_settings(settings)
    try:
        await blob_store.ensure_bucket()
    except StoreUnavailableError:
        logger.warning("MinIO bucket %s not reachable at startup, image uploads will fail", settings.MINIO_BUCKET)

    report_service, hotspot_service, analytics_service = build_services(
        SqlReportStore(AsyncSessionLocal, feed, **store_options),
        SqlAnalysisLog(AsyncSessionLocal, **store_options),
        SqlHotspotStore(AsyncSessionLocal, **store_options),
        SqlEventLog(AsyncSessionLocal, **store_options),
        blob_store,
        AnalysisConfig.from_settings(settings),
    )
    app.state.report_service = report_service
    app.state.hotspot_service = hotspot_service
    app.state.analytics_service = analytics_service

    start_background(redis_listener())
    start_background(hotspot_service.run_periodically(settings.HOTSPOT_INTERVAL_SECONDS))
    logger.info("CivicLens API started")

@app.on_event("shutdown")
async def shutdown():
    await stop_background()
    await app.state.report_service.wait_for_pending()
    await redis_client.aclose()

@app.get("/")
async def root():
    return {"message": "CivicLens API is running"}
