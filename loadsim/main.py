"""
Load Simulator - Main Application Entry Point

FastAPI application that runs synthetic and operator-submitted queries against
Postgres and streams their latency to live dashboards over WebSocket.
"""

from contextlib import asynccontextmanager
from typing import Any, cast

import logging
from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from loadsim import __version__
from loadsim.api.dependencies import get_services
from loadsim.config import settings
from loadsim.core.errors import StoreConnectionError
from loadsim.core.services import Services, build_services
from loadsim.models.queries import ExecuteQueryRequest
from loadsim.websocket import stream_viewer

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(settings.LOG_FILE)
        if settings.LOG_FILE
        else logging.NullHandler(),
    ],
)

# Suppress asyncpg connection chatter
logging.getLogger("asyncpg").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager - handles startup and shutdown events.
    """
    # Startup
    logger.info("🚀 Load Simulator starting up...")
    logger.info(
        f"🔧 Environment: {'Development' if settings.APP_DEBUG else 'Production'}"
    )

    services = build_services(settings)
    app.state.services = services

    if settings.POSTGRES_CONNECT_ON_STARTUP:
        try:
            logger.info("🐘 Initializing Postgres connection pool...")
            await services.pool.initialize()
            await services.gateway.ensure_schema()
            logger.info("✅ Postgres pool initialized")
        except StoreConnectionError as e:
            logger.error(f"❌ Failed to initialize connection pool: {e}")
            logger.warning("⚠️  Application starting without database connections")

    if settings.GENERATOR_ENABLED:
        services.generator.start()

    yield

    # Shutdown
    logger.info("🛑 Load Simulator shutting down...")
    try:
        await services.shutdown()
        logger.info("✅ Generator stopped and connection pool closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Initialize FastAPI application
app = FastAPI(
    title="Load Simulator",
    description="Live query latency simulator for Postgres",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info(f"🔓 CORS enabled for origins: {settings.CORS_ORIGINS}")


# ============================================================================
# Health Check & Info Endpoints
# ============================================================================


@app.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        dict: Service health status and version information
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "service": "loadsim",
        "version": __version__,
        "environment": "development" if settings.APP_DEBUG else "production",
        "checks": {},
    }

    try:
        stats = await services.pool.get_pool_stats()
        is_healthy = await services.pool.is_healthy()
        health_status["checks"]["postgres"] = {
            "status": "healthy" if is_healthy else "unhealthy",
            "pool": stats,
        }
        if not is_healthy:
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["checks"]["postgres"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "degraded"

    health_status["checks"]["generator"] = services.generator.status()
    health_status["viewers"] = len(services.sessions)
    return health_status


@app.get("/api/info")
async def api_info():
    """
    API information endpoint.

    Returns:
        dict: Application configuration and capabilities
    """
    return {
        "name": "Load Simulator",
        "version": __version__,
        "description": "Live query latency simulator for Postgres",
        "features": {
            "allowed_query_types": ["SELECT", "INSERT", "UPDATE"],
            "metrics_window_size": settings.METRICS_WINDOW_SIZE,
            "history_capacity": settings.HISTORY_CAPACITY,
            "generator_period_ms": settings.GENERATOR_PERIOD_MS,
            "websocket_support": True,
        },
        "endpoints": {
            "api_docs": "/api/docs",
            "health": "/health",
            "execute": "/execute-query",
            "viewers": "/api/viewers",
            "live_metrics": "/ws/metrics",
        },
    }


@app.get("/api/generator")
async def generator_status(services: Services = Depends(get_services)):
    """Autonomous generator state and counters."""
    return services.describe()


# ============================================================================
# API Routes
# ============================================================================

from loadsim.api.routes import queries  # noqa: E402
from loadsim.api.routes import viewers  # noqa: E402

app.include_router(queries.router, prefix="/api/queries", tags=["queries"])
app.include_router(viewers.router, prefix="/api/viewers", tags=["viewers"])


@app.post("/execute-query", tags=["queries"])
async def execute_query_legacy(
    body: ExecuteQueryRequest,
    services: Services = Depends(get_services),
):
    """Dashboard path for query execution (same as /api/queries/execute)."""
    return await queries.execute_query(body, services)


# ============================================================================
# WebSocket endpoint
# ============================================================================


@app.websocket("/ws/metrics")
async def websocket_live_metrics(websocket: WebSocket):
    """
    WebSocket endpoint for live query metrics.

    Sends `connected` with the viewer id, then a `query_metric` message for
    every executed query. Accepts `execute`, `history` and `stats` actions.
    """
    await websocket.accept()
    services: Services | None = getattr(websocket.app.state, "services", None)
    if services is None:
        await websocket.close(code=1013)
        return

    logger.info("📡 Viewer connected")
    try:
        await stream_viewer(websocket, services)
    except WebSocketDisconnect:
        logger.info("📡 Viewer disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        try:
            await websocket.close()
        except Exception:
            pass


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "loadsim.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
