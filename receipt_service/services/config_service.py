"""Process-wide, read-only service configuration."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_OCR_SPACE_URL = "https://api.ocr.space/parse/image"
DEFAULT_LLM_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_LLM_MODEL = "gpt-3.5-turbo"
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class ServiceSettings(BaseModel):
    """Credentials, endpoints and timeouts shared by every pipeline component.

    Built once at startup and passed around by reference. Instances are frozen,
    so nothing downstream can mutate them between requests.
    """

    model_config = ConfigDict(frozen=True)

    environment: str = "development"

    ocr_space_api_key: Optional[str] = None
    ocr_space_api_url: str = DEFAULT_OCR_SPACE_URL

    llm_api_key: Optional[str] = None
    llm_api_url: str = DEFAULT_LLM_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_max_concurrent: int = Field(default=4, ge=1)
    llm_max_input_chars: int = Field(default=15000, ge=1)

    tesseract_cmd: Optional[str] = None
    tessdata_dir: Optional[str] = None

    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, ge=1)

    native_ocr_timeout: float = Field(default=8.0, gt=0)
    cloud_ocr_timeout: float = Field(default=8.0, gt=0)
    llm_request_timeout: float = Field(default=8.0, gt=0)
    enrichment_budget: float = Field(default=5.0, gt=0)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def cloud_ocr_configured(self) -> bool:
        return bool(self.ocr_space_api_key)

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceSettings":
        env = os.environ if environ is None else environ

        return cls(
            environment=env.get("APP_ENV") or env.get("NODE_ENV") or "development",
            ocr_space_api_key=env.get("OCR_SPACE_API_KEY") or None,
            ocr_space_api_url=env.get("OCR_SPACE_API_URL") or DEFAULT_OCR_SPACE_URL,
            llm_api_key=env.get("LLM_API_KEY") or env.get("LLM_KEY") or None,
            llm_api_url=env.get("LLM_API_URL") or DEFAULT_LLM_URL,
            llm_model=env.get("LLM_MODEL") or DEFAULT_LLM_MODEL,
            llm_max_concurrent=_int_from_env(env, "LLM_MAX_CONCURRENT", 4),
            tesseract_cmd=env.get("TESSERACT_CMD") or None,
            tessdata_dir=env.get("TESSDATA_DIR") or None,
            max_upload_bytes=_int_from_env(env, "MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
        )


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s value %r, using default %s", name, raw, default)
        return default
    if value < 1:
        logger.warning("%s must be positive, using default %s", name, default)
        return default
    return value


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    """Return the settings snapshot taken from the environment on first use."""
    settings = ServiceSettings.from_env()
    logger.info(
        "Settings loaded: env=%s cloud_ocr=%s llm=%s",
        settings.environment,
        "configured" if settings.cloud_ocr_configured else "missing",
        "configured" if settings.llm_configured else "missing",
    )
    return settings
