"""Sequential OCR → heuristics → LLM pipeline for single receipt uploads."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, Dict, Optional

from receipt_service.extractors.field_extractors import extract_fields
from receipt_service.extractors.llm_extractor import LLMReceiptExtractor
from receipt_service.models.pipeline import OcrSource, PipelineRun, PipelineState
from receipt_service.models.schema import LLMReceipt, ParsedReceipt, ReceiptImage
from receipt_service.ocr.ocr_space_ocr import OCRSpaceOCR
from receipt_service.ocr.tesseract_ocr import TesseractOCR
from receipt_service.services.config_service import ServiceSettings
from receipt_service.utils.helpers.exceptions import (
    BackendUnavailable,
    EnrichmentSkipped,
    PipelineError,
    PipelinePhase,
    UploadValidationError,
)
from receipt_service.utils.logging_utils import log_transition_event

OCR_UNAVAILABLE_MESSAGE = (
    "OCR engine unavailable. Please install Tesseract on the server or configure a cloud OCR provider."
)
MISSING_FILE_MESSAGE = "No file uploaded. Attach the receipt image in the 'receipt' field."

SOURCE_CONFIDENCE = {OcrSource.NATIVE: 0.9, OcrSource.CLOUD: 0.8}
NO_AMOUNT_CONFIDENCE = 0.4
LLM_OVERRIDE_FIELDS = ("vendor", "amount", "currency", "date", "confidence", "category")


class EnrichmentRunner:
    """Races LLM calls against a time budget.

    Calls run on a bounded worker pool. A call that misses the budget is
    abandoned: it keeps its worker until the HTTP timeout ends it, and its
    result is discarded. New calls are refused while every slot is busy, so
    abandoned calls cannot pile up.
    """

    def __init__(self, extractor: LLMReceiptExtractor, budget: float, max_in_flight: int):
        self.extractor = extractor
        self.budget = budget
        self._slots = threading.BoundedSemaphore(max_in_flight)
        self._executor = ThreadPoolExecutor(max_workers=max_in_flight, thread_name_prefix="llm-enrich")

    def enrich(self, raw_text: str) -> LLMReceipt:
        if not self.extractor.is_available():
            raise EnrichmentSkipped("LLM not configured")
        if not self._slots.acquire(blocking=False):
            raise EnrichmentSkipped("too many enrichment calls in flight")

        try:
            future = self._executor.submit(self.extractor.extract, raw_text)
        except RuntimeError as exc:
            self._slots.release()
            raise EnrichmentSkipped(f"enrichment pool unavailable: {exc}") from exc
        future.add_done_callback(lambda _: self._slots.release())

        try:
            result = future.result(timeout=self.budget)
        except FuturesTimeoutError:
            raise EnrichmentSkipped(f"LLM did not respond within {self.budget:g}s") from None
        except Exception as exc:
            raise EnrichmentSkipped(f"LLM enrichment failed: {exc}") from exc

        if result is None:
            raise EnrichmentSkipped("LLM returned no usable result")
        return result

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


class ReceiptPipeline:
    """Drives a PipelineRun through its states until a terminal one is reached."""

    def __init__(
        self,
        settings: ServiceSettings,
        local_ocr: Optional[TesseractOCR] = None,
        cloud_ocr: Optional[OCRSpaceOCR] = None,
        llm_extractor: Optional[LLMReceiptExtractor] = None,
    ):
        self.settings = settings
        self.local_ocr = local_ocr or TesseractOCR(settings)
        self.cloud_ocr = cloud_ocr or OCRSpaceOCR(settings)
        self.enrichment = EnrichmentRunner(
            llm_extractor or LLMReceiptExtractor(settings),
            budget=settings.enrichment_budget,
            max_in_flight=settings.llm_max_concurrent,
        )
        self.logger = logging.getLogger(__name__)
        self._handlers: Dict[PipelineState, Callable[[PipelineRun], PipelineState]] = {
            PipelineState.RECEIVING_UPLOAD: self._receive_upload,
            PipelineState.RUNNING_LOCAL_OCR: self._run_local_ocr,
            PipelineState.RUNNING_CLOUD_OCR: self._run_cloud_ocr,
            PipelineState.EXTRACTING_HEURISTICS: self._extract_heuristics,
            PipelineState.ENRICHING_WITH_LLM: self._enrich_with_llm,
        }

    def run(self, upload: Optional[ReceiptImage]) -> PipelineRun:
        """Execute the pipeline and return the finished run, whatever its outcome."""
        run = PipelineRun(upload=upload)
        while not run.state.is_terminal:
            current = run.state
            started = time.perf_counter()
            next_state = self._handlers[current](run)
            run.advance(next_state)
            log_transition_event(
                run.request_id,
                next_state.value,
                previous=current.value,
                elapsed_s=round(time.perf_counter() - started, 3),
                ocr_source=run.ocr_source.value if run.ocr_source else None,
                error_phase=run.errors[-1].phase.value if run.errors else None,
            )
        self.logger.info(
            "Parse %s finished in state %s via %s",
            run.request_id,
            run.state.value,
            " → ".join(state.value for state in run.history),
        )
        return run

    def parse(self, upload: Optional[ReceiptImage]) -> ParsedReceipt:
        """Run the pipeline and return the receipt or raise the terminal failure."""
        run = self.run(upload)
        if run.state is PipelineState.REJECTED:
            raise run.rejection
        if run.state is PipelineState.OCR_UNAVAILABLE:
            raise BackendUnavailable(OCR_UNAVAILABLE_MESSAGE, cause=run.primary_error)
        return run.receipt

    def close(self) -> None:
        self.enrichment.shutdown()

    # -----------------
    # State handlers
    # -----------------
    def _receive_upload(self, run: PipelineRun) -> PipelineState:
        upload = run.upload
        if upload is None or not upload.content:
            run.rejection = UploadValidationError(MISSING_FILE_MESSAGE)
            return PipelineState.REJECTED

        limit = self.settings.max_upload_bytes
        if upload.size > limit:
            run.rejection = UploadValidationError(
                f"File too large ({upload.size} bytes). Maximum allowed size is {_format_size(limit)}."
            )
            return PipelineState.REJECTED

        self.logger.info(
            "Uploaded file info: name=%s type=%s size=%d", upload.filename, upload.media_type, upload.size
        )
        return PipelineState.RUNNING_LOCAL_OCR

    def _run_local_ocr(self, run: PipelineRun) -> PipelineState:
        try:
            text = self.local_ocr.extract_text(run.upload)
        except PipelineError as exc:
            self.logger.warning("Native tesseract OCR not available or failed: %s", exc.message)
            run.errors.append(exc)
            return PipelineState.RUNNING_CLOUD_OCR
        except Exception as exc:
            self.logger.exception("Unexpected native OCR failure")
            run.errors.append(PipelineError(PipelinePhase.NATIVE_OCR, f"unexpected native OCR failure: {exc}"))
            return PipelineState.RUNNING_CLOUD_OCR

        if not text or not text.strip():
            run.errors.append(PipelineError(PipelinePhase.NATIVE_OCR, "tesseract produced no output"))
            return PipelineState.RUNNING_CLOUD_OCR

        run.raw_text = text
        run.ocr_source = OcrSource.NATIVE
        return PipelineState.EXTRACTING_HEURISTICS

    def _run_cloud_ocr(self, run: PipelineRun) -> PipelineState:
        if not self.cloud_ocr.is_available():
            self.logger.info("Cloud OCR not configured; no OCR backend left")
            return PipelineState.OCR_UNAVAILABLE

        self.logger.info("Attempting OCR.space cloud fallback")
        try:
            text = self.cloud_ocr.extract_text(run.upload)
        except PipelineError as exc:
            run.errors.append(exc)
            return PipelineState.OCR_UNAVAILABLE
        except Exception as exc:
            self.logger.exception("Unexpected cloud OCR failure")
            run.errors.append(PipelineError(PipelinePhase.CLOUD_OCR, f"unexpected cloud OCR failure: {exc}"))
            return PipelineState.OCR_UNAVAILABLE

        if not text or not text.strip():
            run.errors.append(PipelineError(PipelinePhase.CLOUD_OCR, "OCR.space returned no text"))
            return PipelineState.OCR_UNAVAILABLE

        run.raw_text = text
        run.ocr_source = OcrSource.CLOUD
        return PipelineState.EXTRACTING_HEURISTICS

    def _extract_heuristics(self, run: PipelineRun) -> PipelineState:
        fields = extract_fields(run.raw_text)
        confidence = SOURCE_CONFIDENCE[run.ocr_source] if fields.amount else NO_AMOUNT_CONFIDENCE
        run.baseline = ParsedReceipt(
            type=fields.type,
            date=fields.date,
            amount=fields.amount,
            currency=fields.currency,
            vendor=fields.vendor,
            category=fields.category,
            items=[],
            raw_text=run.raw_text,
            confidence=confidence,
        )
        return PipelineState.ENRICHING_WITH_LLM

    def _enrich_with_llm(self, run: PipelineRun) -> PipelineState:
        try:
            llm_result = self.enrichment.enrich(run.raw_text)
        except EnrichmentSkipped as exc:
            self.logger.info("LLM enrichment skipped, returning heuristic result: %s", exc)
            run.enrichment_note = str(exc)
            run.receipt = run.baseline
            return PipelineState.DONE

        run.enrichment_note = "applied"
        run.receipt = merge_llm_result(run.baseline, llm_result)
        return PipelineState.DONE


def merge_llm_result(baseline: ParsedReceipt, llm_result: LLMReceipt) -> ParsedReceipt:
    """Overlay the fields the LLM actually returned onto the heuristic baseline."""
    updates = {
        name: getattr(llm_result, name)
        for name in LLM_OVERRIDE_FIELDS
        if getattr(llm_result, name) is not None
    }
    if llm_result.items:
        updates["items"] = list(llm_result.items)
    return baseline.model_copy(update=updates)


def _format_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):g} MB"
    return f"{size} bytes"
