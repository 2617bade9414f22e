import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from incident_desk.core.config import settings
from incident_desk.core.database import init_models
from incident_desk.core.exceptions import MonitorStartupError
from incident_desk.core.logging import configure_structured_logging
from incident_desk.jobs.sla_monitor import SlaMonitor

# Configure structured logging
if settings.ENABLE_STRUCTURED_LOGGING:
    configure_structured_logging(
        log_level="DEBUG" if settings.DEBUG else "INFO",
        json_format=not settings.DEBUG  # Use JSON in production, plain text in debug
    )
else:
    logging.basicConfig(
        level=logging.INFO if not settings.DEBUG else logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

logger = logging.getLogger(__name__)

# Seconds to let an in-flight SLA pass finish on shutdown
SHUTDOWN_PASS_TIMEOUT = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Creates tables, then starts the SLA monitor and stops it on shutdown.
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_models()

    monitor = SlaMonitor()
    app.state.sla_monitor = monitor

    if settings.SLA_MONITORING_ENABLED:
        try:
            await monitor.start_monitoring()
        except MonitorStartupError as e:
            logger.error(f"SLA monitoring is not running: {e.message}", extra={"details": e.details})
    else:
        logger.info("SLA monitoring disabled by configuration")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}")

    await monitor.stop_monitoring()
    if not await monitor.wait_for_pass(timeout=SHUTDOWN_PASS_TIMEOUT):
        logger.warning("SLA pass still running at shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Incident ticket SLA monitoring and breach notification",
    debug=settings.DEBUG,
    lifespan=lifespan,
)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns application health status including SLA monitor status.
    """
    monitor = getattr(request.app.state, "sla_monitor", None)
    sla_status = monitor.get_status() if monitor else None

    return {
        "status": "healthy",
        "monitors": {
            "sla": sla_status
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "incident_desk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
