"""Lightweight JSON logging utilities for pipeline instrumentation."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

LOG_DIR = Path(os.getenv("RECEIPT_LOG_DIR") or Path(__file__).resolve().parents[2] / "artifacts" / "logs")
LOG_FILE_NAME = "pipeline.log"
SENSITIVE_KEYS = {"raw_text", "raw_image", "image_data", "text_dump", "api_key"}


def configure_logging(level: str = "INFO") -> None:
	"""Install a root handler once; later calls only adjust the level."""

	numeric = getattr(logging, str(level).upper(), logging.INFO)
	logging.basicConfig(
		level=numeric,
		format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
	)
	logging.getLogger().setLevel(numeric)


def log_pipeline_event(event: Dict[str, Any]) -> None:
	"""Persist a structured pipeline event without leaking sensitive payloads."""

	payload = {
		"timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
	}
	for key, value in event.items():
		if key is None:
			continue
		normalized = str(key)
		if normalized.lower() in SENSITIVE_KEYS:
			continue
		payload[normalized] = value

	try:
		LOG_DIR.mkdir(parents=True, exist_ok=True)
		with (LOG_DIR / LOG_FILE_NAME).open("a", encoding="utf-8") as handle:
			json.dump(payload, handle, ensure_ascii=False, default=str)
			handle.write("\n")
	except Exception as exc:  # pragma: no cover - logging must never break pipeline
		logger.debug("Failed to write pipeline log: %s", exc, exc_info=True)


def log_transition_event(request_id: str, state: str, **fields: Any) -> None:
	"""Record a single state-machine transition for one parse request."""

	payload: Dict[str, Any] = {"event_type": "transition", "request_id": request_id, "state": state}
	payload.update(fields)
	log_pipeline_event(payload)
