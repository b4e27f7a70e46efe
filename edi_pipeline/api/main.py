"""
FastAPI Main Application
Entry point for the EDI submission pipeline API
Source: https://fastapi.tiangolo.com/
"""

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI

from edi_pipeline import __version__
from edi_pipeline.api.routes import submissions
from edi_pipeline.core.config import get_edi_settings
from edi_pipeline.services.pipeline import Pipeline, build_pipeline
from edi_pipeline.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(pipeline: Optional[Pipeline] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        pipeline: Pre-wired pipeline; built from environment settings if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
        nonlocal pipeline
        if pipeline is None:
            settings = get_edi_settings()
            setup_logging(
                level=settings.LOG_LEVEL,
                log_file=settings.LOG_FILE,
                json_logs=settings.LOG_JSON,
            )
            pipeline = build_pipeline(settings)

        app.state.pipeline = pipeline
        await pipeline.start()
        logger.info(f"EDI API started (mode={pipeline.router.mode.value})")

        yield

        logger.info("Shutting down EDI API")
        await pipeline.stop()

    app = FastAPI(
        title="EDI Claim Submission Pipeline",
        description="Durable claim submission queue with sandbox network isolation",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, Any]:
        current = app.state.pipeline
        return {
            "status": "healthy",
            "version": __version__,
            "mode": current.router.mode.value,
            "queue_running": current.queue.is_running,
        }

    app.include_router(submissions.router)
    return app
