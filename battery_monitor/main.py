"""
Battery Monitor - Main Application Entry Point
Application Factory Pattern with ORJSONResponse.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from battery_monitor.core.config import settings
from battery_monitor.core.exceptions import (
    BatteryMonitorException,
    StoreUnavailableError,
    battery_monitor_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from battery_monitor.core.logging import configure_logging, get_logger
from battery_monitor.core.metrics import MetricsMiddleware
from battery_monitor.core.sentry import init_sentry
from battery_monitor.modules.realtime.broadcaster import ChangeBroadcaster
from battery_monitor.modules.simulator.perturbation import SimulatorConfig
from battery_monitor.modules.simulator.seed import seed_demo_data
from battery_monitor.modules.simulator.simulator import TelemetrySimulator
from battery_monitor.store import BatteryStore, create_store

# Configure logging on module load
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup fails with ``StoreUnavailableError`` when the record store cannot
    be reached; the simulator only starts after a successful ping.
    """
    logger.info(
        "Starting Battery Monitor",
        environment=settings.environment,
        debug=settings.debug,
        store_backend=settings.store_backend,
    )

    store: BatteryStore = app.state.injected_store or await create_store(settings)
    try:
        await store.ping()
    except StoreUnavailableError as e:
        logger.error("Record store unreachable, aborting startup", error=e.message)
        await store.close()
        raise

    if app.state.seed_demo_data:
        await seed_demo_data(store)

    broadcaster = ChangeBroadcaster(store)
    simulator = TelemetrySimulator(store, broadcaster, SimulatorConfig.from_settings(settings))

    app.state.store = store
    app.state.broadcaster = broadcaster
    app.state.simulator = simulator

    if app.state.start_simulator:
        simulator.start()

    yield

    logger.info("Shutting down Battery Monitor")
    await simulator.stop()
    await broadcaster.close()
    await store.close()


TAGS_METADATA = [
    {
        "name": "Batteries",
        "description": "Battery records, health history, usage patterns and recommendations.",
    },
    {
        "name": "Realtime",
        "description": """
Live battery events over SSE (`/realtime/stream`) or WebSocket (`/realtime/ws`).

| Event | `data` |
|-------|--------|
| `snapshot` | every battery |
| `record_updated` | `{battery, history?}` |
| `record_created` | the new battery |
        """,
    },
    {"name": "Health", "description": "Liveness and metrics."},
]


def create_application(
    store: BatteryStore | None = None,
    start_simulator: bool | None = None,
    seed_demo: bool | None = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        store: Use this store instead of the configured backend (tests)
        start_simulator: Override ``settings.simulator_enabled``
        seed_demo: Override ``settings.seed_demo_data``
    """
    app = FastAPI(
        title="Battery Monitor API",
        summary="Battery health telemetry with a simulated realtime feed",
        version=settings.app_version,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.injected_store = store
    app.state.start_simulator = settings.simulator_enabled if start_simulator is None else start_simulator
    app.state.seed_demo_data = settings.seed_demo_data if seed_demo is None else seed_demo

    init_sentry()

    if settings.prometheus_enabled:
        app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(BatteryMonitorException, battery_monitor_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _include_routers(app)

    @app.get("/health", tags=["Health"], response_class=ORJSONResponse)
    async def health_check() -> dict:
        """Health check endpoint."""
        broadcaster = getattr(app.state, "broadcaster", None)
        return {
            "status": "healthy",
            "service": "battery-monitor",
            "store": settings.store_backend,
            "subscribers": broadcaster.subscriber_count if broadcaster else 0,
        }

    @app.get("/", tags=["Health"], response_class=ORJSONResponse)
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.project_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


def _include_routers(app: FastAPI) -> None:
    """
    Include module routers under the versioned prefix.
    Metrics are served at the root.
    """
    from battery_monitor.core.metrics import router as metrics_router
    from battery_monitor.modules.batteries.router import router as batteries_router
    from battery_monitor.modules.realtime.router import router as realtime_router

    api_v1_prefix = settings.api_v1_str

    for router in (batteries_router, realtime_router):
        app.include_router(router, prefix=api_v1_prefix)

    if settings.prometheus_enabled:
        app.include_router(metrics_router)

    logger.info(
        "Routers registered",
        modules=["batteries", "realtime", "metrics"],
        api_prefix=api_v1_prefix,
    )


# Create application instance
app = create_application()
