from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from engage_api import __version__
from engage_api import models  # noqa: F401
from engage_api.core.settings import settings
from engage_api.db.session import async_session, engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import RewardJobScheduler


APP_VERSION = __version__


def _schedule_path() -> Path:
    schedule_path = Path(settings.job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path(__file__).resolve().parent.parent.parent / schedule_path
    return schedule_path


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Reward engine starting",
        environment=settings.environment,
        reward_day_timezone=settings.reward_day_timezone,
    )

    schedule_path = _schedule_path()
    job_scheduler = RewardJobScheduler(session_factory=async_session, config_path=schedule_path)
    app.state.job_scheduler = job_scheduler

    if settings.job_scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Reward job scheduler failed to start", error=str(exc))
        else:
            logger.info("Reward job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info("Reward job scheduler disabled", reason="job_scheduler_enabled is false")

    try:
        yield
    finally:
        await job_scheduler.stop()
        await engine.dispose()
        logger.info("Reward engine stopped")


def create_app() -> FastAPI:
    """Application factory for the engage FastAPI service."""
    configure_logging(
        service_name="engage-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Engage Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="engage-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
