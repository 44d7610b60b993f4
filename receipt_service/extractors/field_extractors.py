"""Rule-based field extraction from raw OCR text.

Every function here is pure: same text in, same fields out.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from receipt_service.categorizer.category_classifier import derive_category
from receipt_service.models.schema import TransactionType

TOTAL_LINE_PATTERN = re.compile(
    r"(?:total|grand total|amount due|amount|balance due)[:\s]*([$₹£]?\s*[\d,]+(?:\.\d{1,2})?)",
    re.IGNORECASE,
)
BARE_DECIMAL_PATTERN = re.compile(r"([\d,]+\.\d{2})")
INCOME_PATTERN = re.compile(r"credited|received|salary|deposit|refund", re.IGNORECASE)

ISO_DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})")
SLASH_DATE_PATTERN = re.compile(r"(\d{2})/(\d{2})/(\d{4})")
HYPHEN_DATE_PATTERN = re.compile(r"(\d{2})-(\d{2})-(\d{4})")

CURRENCY_SYMBOLS = {"₹": "INR", "$": "USD"}


@dataclass(frozen=True)
class HeuristicFields:
    vendor: Optional[str]
    amount: Optional[float]
    currency: Optional[str]
    date: Optional[str]
    type: TransactionType
    category: str


def _lines(text: str):
    return [line.strip() for line in re.split(r"\r?\n", text) if line.strip()]


def _finite_or_none(digits: str) -> Optional[float]:
    try:
        value = float(digits)
    except ValueError:
        return None
    # a few hundred OCR digits overflow to inf
    return value if math.isfinite(value) else None


def find_amount(text: str) -> Tuple[Optional[float], Optional[str]]:
    """Return ``(amount, currency)`` for the receipt total.

    Totals usually sit near the bottom, so lines are scanned last to first.
    Unparseable or non-finite numbers are skipped.
    """
    for line in reversed(_lines(text)):
        match = TOTAL_LINE_PATTERN.search(line)
        if not match:
            continue
        token = match.group(1)
        digits = re.sub(r"[,$\s₹£]", "", token)
        value = _finite_or_none(digits)
        if value is None:
            continue
        currency = next((code for symbol, code in CURRENCY_SYMBOLS.items() if symbol in token), None)
        return value, currency

    match = BARE_DECIMAL_PATTERN.search(text)
    if match:
        value = _finite_or_none(match.group(1).replace(",", ""))
        if value is not None:
            return value, None
    return None, None


def _iso_or_none(year: str, month: str, day: str) -> Optional[str]:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def find_date(text: str) -> Optional[str]:
    """Return the first recognisable date as ``YYYY-MM-DD``.

    ``NN/NN/YYYY`` and ``NN-NN-YYYY`` are only normalised when the first group
    is above 12 and therefore has to be the day. Otherwise the order is
    ambiguous and no date is returned.
    """
    iso = ISO_DATE_PATTERN.search(text)
    if iso:
        # ISO matches are kept verbatim but must still be real calendar dates
        value = iso.group(1)
        year, month, day = value.split("-")
        return value if _iso_or_none(year, month, day) else None

    for pattern in (SLASH_DATE_PATTERN, HYPHEN_DATE_PATTERN):
        match = pattern.search(text)
        if not match:
            continue
        first, second, year = match.groups()
        if int(first) > 12:
            return _iso_or_none(year, second, first)
        return None
    return None


def find_vendor(text: str) -> Optional[str]:
    lines = _lines(text)
    return lines[0] if lines else None


def infer_transaction_type(text: str) -> TransactionType:
    if INCOME_PATTERN.search(text or ""):
        return TransactionType.INCOME
    return TransactionType.EXPENSE


def extract_fields(text: str) -> HeuristicFields:
    amount, currency = find_amount(text)
    return HeuristicFields(
        vendor=find_vendor(text),
        amount=amount,
        currency=currency,
        date=find_date(text),
        type=infer_transaction_type(text),
        category=derive_category(text),
    )
