from __future__ import annotations

import math
import re
from datetime import date as calendar_date
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


ISO_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class ReceiptImage(BaseModel):
    """An uploaded receipt as received from the client. Lives for one request."""

    model_config = ConfigDict(frozen=True)

    content: bytes
    media_type: Optional[str] = None
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_image(self) -> bool:
        return bool(self.media_type) and self.media_type.lower().startswith("image")


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    name: Optional[str] = None
    qty: Optional[float] = None
    price: Optional[float] = None
    total: Optional[float] = None


class ParsedReceipt(BaseModel):
    """Structured result of a receipt parse, as returned to the tracker frontend."""

    type: TransactionType
    date: Optional[str] = Field(default=None, description="ISO 8601 calendar date (YYYY-MM-DD).")
    amount: Optional[float] = Field(default=None, ge=0.0)
    currency: Optional[str] = Field(default=None, description="Short currency code such as USD or INR.")
    vendor: Optional[str] = None
    category: Optional[str] = Field(default=None, description="One-word category tag, e.g. food or transport.")
    items: List[LineItem] = Field(default_factory=list)
    raw_text: str
    confidence: float = Field(ge=0.0, le=1.0)


class LLMReceipt(BaseModel):
    """Fields an LLM may return for a receipt. Every field is optional.

    The model is lenient: malformed line items are dropped, and negative or
    non-finite amounts, non-ISO dates and confidence values outside [0, 1]
    are discarded instead of failing the whole result.
    """

    model_config = ConfigDict(extra="ignore")

    date: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    vendor: Optional[str] = None
    category: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    confidence: Optional[float] = None

    @field_validator("date", "currency", "vendor", "category", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return str(value)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.replace(",", "").strip().lstrip("$₹£").strip()
            return cleaned or None
        return value

    @field_validator("amount")
    @classmethod
    def usable_amount(cls, value: Optional[float]) -> Optional[float]:
        # json accepts NaN, Infinity and 1e999; none of them is a total
        if value is None or not math.isfinite(value) or value < 0:
            return None
        return value

    @field_validator("date")
    @classmethod
    def iso_calendar_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        match = ISO_DATE_PREFIX.match(value)
        if not match:
            return None
        try:
            return calendar_date(*(int(part) for part in match.groups())).isoformat()
        except ValueError:
            return None

    @field_validator("items", mode="before")
    @classmethod
    def drop_malformed_items(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        kept = []
        for entry in value:
            if not isinstance(entry, dict):
                continue
            try:
                kept.append(LineItem.model_validate(entry))
            except ValueError:
                continue
        return kept

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_in_range(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not 0.0 <= float(value) <= 1.0:
            return None
        return float(value)


class ErrorResponse(BaseModel):
    message: str
    debug: Optional[dict] = None
