"""Stand-ins for the OCR and LLM backends used across the test suite."""

import threading
from typing import List, Optional

from receipt_service.models.schema import LLMReceipt, ReceiptImage
from receipt_service.utils.helpers.exceptions import PipelineError, PipelinePhase

GROCERY_TEXT = "Chicken 2kg 500\nRice 5kg 250\nTotal 750"


class StubOCR:
    """Stands in for TesseractOCR / OCRSpaceOCR."""

    def __init__(self, text: Optional[str] = None, error: Optional[Exception] = None, available: bool = True):
        self.text = text
        self.error = error
        self.available = available
        self.calls: List[ReceiptImage] = []

    def is_available(self) -> bool:
        return self.available

    def extract_text(self, upload: ReceiptImage):
        self.calls.append(upload)
        if self.error is not None:
            raise self.error
        return self.text


class StubLLM:
    """Stands in for LLMReceiptExtractor; optionally blocks until released."""

    def __init__(self, result: Optional[LLMReceipt] = None, available: bool = True, block: Optional[threading.Event] = None):
        self.result = result
        self.available = available
        self.block = block
        self.calls: List[str] = []

    def is_available(self) -> bool:
        return self.available

    def extract(self, raw_text: str) -> Optional[LLMReceipt]:
        self.calls.append(raw_text)
        if self.block is not None:
            self.block.wait(timeout=5)
        return self.result


def native_failure(message: str = "tesseract-not-found", detail: Optional[str] = None) -> PipelineError:
    return PipelineError(PipelinePhase.NATIVE_OCR, message, detail)
