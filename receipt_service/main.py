import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from receipt_service import __version__
from receipt_service.api.routes import router as parse_router
from receipt_service.pipeline.receipt_pipeline import ReceiptPipeline
from receipt_service.services.config_service import ServiceSettings, get_settings
from receipt_service.utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[ServiceSettings] = None, pipeline: Optional[ReceiptPipeline] = None) -> FastAPI:
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    settings = settings or get_settings()
    pipeline = pipeline or ReceiptPipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        pipeline.close()

    app = FastAPI(
        title="Receipt Parse Service",
        description="Extracts transaction fields from receipt images for the expense tracker.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    logger.info(
        "Receipt parse service ready (env=%s, tesseract=%s, ocr.space=%s, llm=%s)",
        settings.environment,
        "found" if pipeline.local_ocr.is_available() else "missing",
        "configured" if settings.cloud_ocr_configured else "missing",
        "configured" if settings.llm_configured else "missing",
    )

    @app.get("/health", tags=["health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "environment": settings.environment}

    app.include_router(parse_router, tags=["parse"])

    return app
