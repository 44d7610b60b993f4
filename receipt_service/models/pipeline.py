"""Receipt parsing state machine.

One ``PipelineRun`` tracks a single parse request from upload to result.

State Transition Rules:
  RECEIVING_UPLOAD      → RUNNING_LOCAL_OCR | REJECTED
  RUNNING_LOCAL_OCR     → EXTRACTING_HEURISTICS (text) | RUNNING_CLOUD_OCR (failure/empty)
  RUNNING_CLOUD_OCR     → EXTRACTING_HEURISTICS (text) | OCR_UNAVAILABLE (failure/empty/skipped)
  EXTRACTING_HEURISTICS → ENRICHING_WITH_LLM
  ENRICHING_WITH_LLM    → DONE

DONE, OCR_UNAVAILABLE and REJECTED are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional
from uuid import uuid4

from receipt_service.models.schema import ParsedReceipt, ReceiptImage
from receipt_service.utils.helpers.exceptions import PipelineError, UploadValidationError


class PipelineState(str, Enum):
    RECEIVING_UPLOAD = "receiving_upload"
    RUNNING_LOCAL_OCR = "running_local_ocr"
    RUNNING_CLOUD_OCR = "running_cloud_ocr"
    EXTRACTING_HEURISTICS = "extracting_heuristics"
    ENRICHING_WITH_LLM = "enriching_with_llm"
    DONE = "done"
    OCR_UNAVAILABLE = "ocr_unavailable"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[PipelineState] = frozenset(
    {PipelineState.DONE, PipelineState.OCR_UNAVAILABLE, PipelineState.REJECTED}
)

ALLOWED_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.RECEIVING_UPLOAD: frozenset({PipelineState.RUNNING_LOCAL_OCR, PipelineState.REJECTED}),
    PipelineState.RUNNING_LOCAL_OCR: frozenset(
        {PipelineState.EXTRACTING_HEURISTICS, PipelineState.RUNNING_CLOUD_OCR}
    ),
    PipelineState.RUNNING_CLOUD_OCR: frozenset(
        {PipelineState.EXTRACTING_HEURISTICS, PipelineState.OCR_UNAVAILABLE}
    ),
    PipelineState.EXTRACTING_HEURISTICS: frozenset({PipelineState.ENRICHING_WITH_LLM}),
    PipelineState.ENRICHING_WITH_LLM: frozenset({PipelineState.DONE}),
}


class OcrSource(str, Enum):
    NATIVE = "native"
    CLOUD = "cloud"


@dataclass
class PipelineRun:
    """Mutable, request-scoped record of a pipeline execution."""

    upload: Optional[ReceiptImage]
    request_id: str = field(default_factory=lambda: uuid4().hex)
    state: PipelineState = PipelineState.RECEIVING_UPLOAD
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVING_UPLOAD])
    raw_text: Optional[str] = None
    ocr_source: Optional[OcrSource] = None
    errors: List[PipelineError] = field(default_factory=list)
    rejection: Optional[UploadValidationError] = None
    baseline: Optional[ParsedReceipt] = None
    receipt: Optional[ParsedReceipt] = None
    enrichment_note: Optional[str] = None

    def advance(self, next_state: PipelineState) -> PipelineState:
        """Move to ``next_state``.

        Raises:
            ValueError: If the transition is not in ALLOWED_TRANSITIONS.
        """
        allowed = ALLOWED_TRANSITIONS.get(self.state, frozenset())
        if next_state not in allowed:
            raise ValueError(f"Illegal pipeline transition {self.state.value} → {next_state.value}")
        self.state = next_state
        self.history.append(next_state)
        return next_state

    @property
    def primary_error(self) -> Optional[PipelineError]:
        """The earliest OCR failure, which is the most useful one to report."""
        return self.errors[0] if self.errors else None

    def debug_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"states": [state.value for state in self.history]}
        error = self.primary_error
        if error is not None:
            payload.update(error.to_debug())
        return payload
