"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roadheat import __version__
from roadheat.config import Settings, get_settings
from roadheat.database import create_engine, create_session_maker
from roadheat.listeners.mqtt import MqttReportListener
from roadheat.routers import health_router, heatmap_router
from roadheat.services.freshness import FreshnessCoordinator
from roadheat.services.heatmap import HeatmapService
from roadheat.services.notifications import NotificationHub
from roadheat.sources.base import ReportSource
from roadheat.sources.http import HttpReportSource
from roadheat.sources.sql import SqlReportSource

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_report_source(settings: Settings) -> ReportSource:
    """Create the configured report source."""
    if settings.report_source == "http":
        if not settings.report_api_url:
            raise ValueError("REPORT_API_URL is required when REPORT_SOURCE=http")
        return HttpReportSource(
            settings.report_api_url,
            api_key=settings.report_api_key,
            timeout=settings.fetch_timeout_seconds or 10.0,
            lookback_days=settings.report_lookback_days,
        )

    engine = create_engine(settings.database_url, debug=settings.debug)
    return SqlReportSource(
        create_session_maker(engine),
        lookback_days=settings.report_lookback_days,
        engine=engine,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Roadheat...")

    source = build_report_source(settings)
    heatmap_service = HeatmapService(
        source,
        max_cells=settings.max_heatmap_cells,
        fetch_timeout=settings.fetch_timeout_seconds,
    )
    hub = NotificationHub()
    coordinator = FreshnessCoordinator(
        heatmap_service.fetch_cells,
        hub,
        poll_interval=settings.poll_interval_seconds,
        debounce=settings.realtime_debounce_seconds,
    )
    app.state.heatmap_service = heatmap_service
    app.state.notification_hub = hub
    app.state.coordinator = coordinator
    logger.info(f"Using {settings.report_source} report source")

    listener = None
    if settings.mqtt_enabled:
        listener = MqttReportListener(
            hub,
            settings.mqtt_host,
            port=settings.mqtt_port,
            topic=settings.mqtt_topic,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            reconnect_seconds=settings.mqtt_reconnect_seconds,
        )
        await listener.start()
        logger.info("Report notification listener started")
    else:
        logger.info("MQTT not configured; heatmaps refresh by polling only")
    app.state.mqtt_listener = listener

    yield

    # Shutdown
    logger.info("Shutting down Roadheat...")

    await coordinator.close()
    if listener is not None:
        await listener.stop()
    await source.close()

    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Roadheat",
    description="Recency-weighted road condition heatmaps",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(heatmap_router)


@app.get("/")
async def root():
    """Root endpoint - shows API info."""
    return {
        "name": "Roadheat",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
