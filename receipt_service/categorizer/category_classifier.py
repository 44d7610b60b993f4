from __future__ import annotations

from typing import Dict, Optional, Sequence

DEFAULT_CATEGORY_KEYWORDS: Dict[str, Sequence[str]] = {
    "food": (
        "chicken", "mutton", "beef", "fish", "rice", "bread", "grocery", "groceries", "bakery",
        "vegetable", "fruit", "dairy", "restaurant", "diner", "meal", "biryani", "kitchen",
        "pizza", "burger", "cafe",
    ),
    "transport": ("taxi", "uber", "ola", "cab", "bus", "train", "metro", "ticket"),
    "health": ("pharmacy", "paracetamol", "ibuprofen", "tablet", "medicine", "hospital", "clinic"),
    "utilities": ("electric", "electricity", "water", "gas", "bill", "internet", "broadband"),
    "entertainment": ("movie", "netflix", "prime", "amazon prime", "concert", "theatre", "cinema"),
}

DEFAULT_CATEGORY = "misc"


class CategoryClassifier:
    """Keyword-based fallback classifier for whole receipts.

    Keyword sets are tested in insertion order and the first set with any
    substring hit wins.
    """

    def __init__(
        self,
        keyword_map: Optional[Dict[str, Sequence[str]]] = None,
        default_category: str = DEFAULT_CATEGORY,
    ) -> None:
        self.keyword_map = keyword_map or DEFAULT_CATEGORY_KEYWORDS
        self.default_category = default_category

    @property
    def vocabulary(self) -> Sequence[str]:
        return (*self.keyword_map.keys(), self.default_category)

    def classify(self, raw_text: Optional[str]) -> str:
        haystack = (raw_text or "").lower()
        for category, keywords in self.keyword_map.items():
            if any(keyword in haystack for keyword in keywords):
                return category
        return self.default_category


def derive_category(raw_text: Optional[str]) -> str:
    return _DEFAULT_CLASSIFIER.classify(raw_text)


_DEFAULT_CLASSIFIER = CategoryClassifier()
