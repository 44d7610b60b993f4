"""
Receipt field extraction through a chat-completion LLM endpoint.
Compatible with OpenAI-style APIs via plain requests calls.
"""

import json
import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from receipt_service.models.schema import LLMReceipt
from receipt_service.services.config_service import ServiceSettings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an assistant that extracts structured receipt information from OCR text. "
    "Output ONLY a single JSON object with keys: date (YYYY-MM-DD or null), amount (number or null), "
    "currency (e.g., USD/INR or null), vendor (string or null), category (one-word category like groceries, "
    "food, transport, utilities, health, entertainment, dining, misc), items (array of objects with "
    "{name, qty, price, total}), raw_text (echo input), confidence (0.0-1.0). "
    "Strictly output JSON only with no surrounding explanation or commentary."
)

FEW_SHOT_EXAMPLES = (
    "Examples:\n"
    "OCR_TEXT:\nChicken 2kg 500\nRice 5kg 250\nTotal 750\n"
    '-> {"category":"food","amount":750}\n\n'
    "OCR_TEXT:\nTaxi Uber 12.50\nTotal 12.50\n"
    '-> {"category":"transport","amount":12.5}\n\n'
    "OCR_TEXT:\nParacetamol 2 50\nTotal 50\n"
    '-> {"category":"health","amount":50}\n'
)


def build_messages(raw_text: str, max_chars: int):
    user = f"OCR_TEXT:\n{raw_text[:max_chars]}\n\n{FEW_SHOT_EXAMPLES}"
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def extract_json_object(completion: str) -> Optional[Dict[str, Any]]:
    """Decode the JSON object starting at the first ``{`` in ``completion``.

    Models sometimes prepend commentary, so anything before the brace is
    skipped. Returns None when nothing decodes to an object.
    """
    start = completion.find("{")
    if start < 0:
        return None
    try:
        parsed, _ = json.JSONDecoder().raw_decode(completion[start:])
    except ValueError as e:
        logger.warning("LLM returned non-JSON or unparsable JSON: %s", e)
        return None
    return parsed if isinstance(parsed, dict) else None


class LLMReceiptExtractor:
    """Calls the configured completion endpoint and returns an LLMReceipt or None."""

    def __init__(self, settings: ServiceSettings, session: Optional[requests.Session] = None):
        self.api_key = settings.llm_api_key
        self.api_url = settings.llm_api_url
        self.model = settings.llm_model
        self.timeout = settings.llm_request_timeout
        self.max_chars = settings.llm_max_input_chars
        self.session = session or requests

        if not self.api_key:
            logger.warning("LLM_API_KEY not set, skipping LLM parsing")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def extract(self, raw_text: str) -> Optional[LLMReceipt]:
        if not self.is_available():
            return None

        payload = {
            "model": self.model,
            "messages": build_messages(raw_text, self.max_chars),
            "temperature": 0.0,
            "max_tokens": 800,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self.session.post(self.api_url, headers=headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("LLM call failed: %s", e)
            return None
        except ValueError as e:
            logger.error("LLM response was not JSON: %s", e)
            return None

        logger.debug("LLM response data: %s", str(data)[:2000])

        completion = _completion_text(data)
        if not completion:
            return None

        fields = extract_json_object(completion)
        if fields is None:
            return None

        try:
            return LLMReceipt.model_validate(fields)
        except ValidationError as e:
            logger.warning("LLM JSON did not match the receipt schema: %s", e)
            return None


def _completion_text(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            return content
    result = data.get("result")
    return result if isinstance(result, str) and result else None
