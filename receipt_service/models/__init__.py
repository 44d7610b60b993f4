"""Models package for the receipt parse service."""

from receipt_service.models.pipeline import PipelineRun, PipelineState
from receipt_service.models.schema import LineItem, LLMReceipt, ParsedReceipt, ReceiptImage, TransactionType

__all__ = [
    "LineItem",
    "LLMReceipt",
    "ParsedReceipt",
    "PipelineRun",
    "PipelineState",
    "ReceiptImage",
    "TransactionType",
]
