"""Pytest configuration and shared fixtures for the receipt parse service tests.

- Pipeline event log redirected to a temp directory
- Stub OCR/LLM backends (no tesseract binary or network needed)
- App/TestClient factory wired with those stubs
"""

import io
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from receipt_service.models.schema import ReceiptImage
from receipt_service.pipeline.receipt_pipeline import ReceiptPipeline
from receipt_service.services.config_service import ServiceSettings
from tests.stubs import StubLLM, StubOCR, native_failure


@pytest.fixture(autouse=True)
def isolate_pipeline_log(tmp_path, monkeypatch):
    """Keep JSON pipeline events out of the repository's artifacts folder."""
    monkeypatch.setattr("receipt_service.utils.logging_utils.LOG_DIR", tmp_path / "logs")
    yield tmp_path / "logs"


@pytest.fixture
def settings() -> ServiceSettings:
    return ServiceSettings()


@pytest.fixture
def png_bytes() -> bytes:
    image = Image.new("RGB", (40, 20), color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def receipt_image(png_bytes) -> ReceiptImage:
    return ReceiptImage(content=png_bytes, media_type="image/png", filename="receipt.png")


@pytest.fixture
def make_pipeline() -> Callable[..., ReceiptPipeline]:
    created: List[ReceiptPipeline] = []

    def factory(settings: Optional[ServiceSettings] = None, local=None, cloud=None, llm=None) -> ReceiptPipeline:
        pipeline = ReceiptPipeline(
            settings or ServiceSettings(),
            local_ocr=local or StubOCR(error=native_failure()),
            cloud_ocr=cloud or StubOCR(available=False),
            llm_extractor=llm or StubLLM(available=False),
        )
        created.append(pipeline)
        return pipeline

    yield factory
    for pipeline in created:
        pipeline.close()


@pytest.fixture
def make_client(make_pipeline) -> Callable[..., TestClient]:
    """FastAPI test client factory with stubbed pipeline backends."""
    from receipt_service.main import create_app

    def factory(settings: Optional[ServiceSettings] = None, **backends) -> TestClient:
        settings = settings or ServiceSettings()
        pipeline = make_pipeline(settings, **backends)
        return TestClient(create_app(settings=settings, pipeline=pipeline))

    return factory
