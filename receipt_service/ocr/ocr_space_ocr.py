#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
OCR.space API integration, used when local tesseract is missing or fails
"""

import base64
import logging
from typing import Optional

import requests

from receipt_service.models.schema import ReceiptImage
from receipt_service.services.config_service import ServiceSettings
from receipt_service.utils.helpers.exceptions import PipelineError, PipelinePhase

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"


class OCRSpaceOCR:
    """
    OCR.space API integration
    Free tier: 25,000 requests/month
    """

    def __init__(self, settings: ServiceSettings, session: Optional[requests.Session] = None):
        self.api_key = settings.ocr_space_api_key
        self.base_url = settings.ocr_space_api_url
        self.timeout = settings.cloud_ocr_timeout
        self.session = session or requests

        if not self.api_key:
            logger.warning("OCR_SPACE_API_KEY not set, OCR.space fallback disabled")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _payload(self, upload: ReceiptImage):
        media_type = upload.media_type or DEFAULT_MEDIA_TYPE
        encoded = base64.b64encode(upload.content).decode("utf-8")
        return {
            "base64Image": f"data:{media_type};base64,{encoded}",
            "language": "eng",
            "isTable": "false",
        }

    def extract_text(self, upload: ReceiptImage) -> Optional[str]:
        """
        Send the upload to OCR.space.

        Returns None when no API key is configured (silent skip). Any HTTP or
        decoding problem is raised as PipelineError so the caller can fold it
        into its failure report.
        """
        if not self.api_key:
            return None

        logger.info("Sending %d bytes to OCR.space", upload.size)
        try:
            response = self.session.post(
                self.base_url,
                data=self._payload(upload),
                headers={"apikey": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            logger.warning("OCR.space call failed: %s", e)
            raise PipelineError(PipelinePhase.CLOUD_OCR, f"OCR.space request failed: {e}") from e
        except ValueError as e:
            logger.warning("Failed to parse OCR.space response: %s", e)
            raise PipelineError(PipelinePhase.CLOUD_OCR, "OCR.space returned invalid JSON", str(e)) from e

        if not isinstance(result, dict):
            raise PipelineError(PipelinePhase.CLOUD_OCR, "OCR.space returned an unexpected payload")

        if result.get("IsErroredOnProcessing"):
            errors = result.get("ErrorMessage") or ["Unknown error"]
            message = errors[0] if isinstance(errors, list) else str(errors)
            raise PipelineError(PipelinePhase.CLOUD_OCR, f"OCR.space API error: {message}")

        parsed_results = result.get("ParsedResults") or []
        if not isinstance(parsed_results, list):
            raise PipelineError(PipelinePhase.CLOUD_OCR, "OCR.space ParsedResults is not a list")
        if not parsed_results:
            logger.warning("No text found in OCR.space response")
            return ""

        first = parsed_results[0]
        if not isinstance(first, dict):
            raise PipelineError(PipelinePhase.CLOUD_OCR, "OCR.space returned a malformed parsed result")

        text = first.get("ParsedText") or ""
        if not isinstance(text, str):
            raise PipelineError(PipelinePhase.CLOUD_OCR, "OCR.space ParsedText is not a string")
        logger.info("OCR.space returned text length: %d", len(text))
        return text
