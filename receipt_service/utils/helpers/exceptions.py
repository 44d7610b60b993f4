"""Exception hierarchy for the receipt parsing pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class PipelinePhase(str, Enum):
    """Stage of the pipeline a failure originated from."""

    NATIVE_OCR = "native-ocr"
    CLOUD_OCR = "cloud-ocr"
    LLM = "llm"


class ReceiptProcessingError(Exception):
    """Raised when high-level receipt workflows fail."""


class UploadValidationError(ReceiptProcessingError):
    """Missing, empty or oversized upload. Maps to HTTP 400."""

    status_code = 400


class PipelineError(ReceiptProcessingError):
    """A single OCR or LLM stage failed.

    ``detail`` holds diagnostics such as subprocess stderr. It is only ever
    shown to callers outside production.
    """

    def __init__(self, phase: PipelinePhase, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.phase = phase
        self.message = message
        self.detail = detail

    def to_debug(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "message": self.message,
            "stderr": self.detail,
        }


class BackendUnavailable(ReceiptProcessingError):
    """Neither OCR backend produced text. Maps to HTTP 503."""

    status_code = 503

    def __init__(self, message: str, cause: Optional[PipelineError] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class EnrichmentSkipped(ReceiptProcessingError):
    """LLM enrichment was absent, timed out or unusable. Never user-visible."""
