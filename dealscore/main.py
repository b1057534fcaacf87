"""
FastAPI Main Application with Recalculation Workers and Scheduler
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator
import logging

from fastapi import FastAPI

from dealscore.api.routes import health, pipeline, recommendations
from dealscore.config import settings
from dealscore.core.logging import setup_logging
from dealscore.domain.models import load_scoring_config
from dealscore.infrastructure.db.database import async_session_factory, close_db, init_db
from dealscore.scheduler.scheduler import PipelineScheduler
from dealscore.services.recalculation_service import RecalculationService

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def resolve_config_path(path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown of the worker pool and scheduler
    """
    logger.info("=" * 60)
    logger.info("Starting dealscore")
    logger.info("=" * 60)

    # 1. Database
    await init_db()

    # 2. Scoring policy (read once, immutable afterwards)
    scoring_config = load_scoring_config(
        resolve_config_path(settings.SCORING_CONFIG_FILE) if settings.SCORING_CONFIG_FILE else None
    )
    logger.info(
        "Scoring policy loaded: base=%d email_cap=%s view_cap=%s silence_cap=%s",
        scoring_config.default_base_score,
        scoring_config.email_not_opened.max_penalty,
        scoring_config.proposal_not_viewed.max_penalty,
        scoring_config.silence.max_penalty,
    )

    # 3. Recalculation workers
    recalculation_service = RecalculationService(
        async_session_factory,
        config=scoring_config,
        workers=settings.RECALC_WORKERS,
        queue_size=settings.RECALC_QUEUE_SIZE,
        store_timeout_seconds=settings.SIGNAL_STORE_TIMEOUT_SECONDS,
        stale_after_hours=settings.STALE_AFTER_HOURS,
        batch_size=settings.BATCH_SIZE,
    )
    recalculation_service.start()
    app.state.recalculation_service = recalculation_service

    # 4. Scheduler
    scheduler = None
    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = PipelineScheduler(recalculation_service)
            scheduler.start()
        except Exception as e:
            logger.error("Failed to start scheduler: %s", e)
            scheduler = None
    else:
        logger.info("Scheduler disabled")
    app.state.scheduler = scheduler

    logger.info("API Server: http://%s:%s", settings.API_HOST, settings.API_PORT)

    yield

    logger.info("Shutting down dealscore...")
    if scheduler:
        scheduler.stop()
    await recalculation_service.stop()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="dealscore",
    description="Recommendation confidence scoring with an append-only score audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["Health"])
app.include_router(recommendations.router, prefix="/api/v1/recommendations", tags=["Recommendations"])
app.include_router(pipeline.router, prefix="/api/v1/pipeline", tags=["Pipeline"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dealscore.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
