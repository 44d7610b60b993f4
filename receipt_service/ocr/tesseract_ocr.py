"""Local Tesseract OCR run as a subprocess."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from receipt_service.models.schema import ReceiptImage
from receipt_service.services.config_service import ServiceSettings
from receipt_service.utils.helpers.exceptions import PipelineError, PipelinePhase
from receipt_service.utils.image_processing import CANONICAL_EXTENSION, normalize_image_for_ocr

logger = logging.getLogger(__name__)

WINDOWS_DEFAULT_TESSERACT = Path(r"C:\Program Files\Tesseract-OCR\tesseract.exe")
PRIMARY_FLAGS = ["-l", "eng", "--oem", "1", "--psm", "3"]
FALLBACK_FLAGS = ["--oem", "1", "--psm", "3"]
STDERR_LIMIT = 2000


@contextmanager
def temporary_image_file(data: bytes, suffix: str) -> Iterator[str]:
    """Write ``data`` to a uniquely named temp file and remove it on exit."""
    handle = tempfile.NamedTemporaryFile(prefix="receipt-", suffix=suffix, delete=False)
    path = handle.name
    try:
        with handle:
            handle.write(data)
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove OCR temp file %s: %s", path, exc)


class TesseractOCR:
    """Primary OCR backend backed by the ``tesseract`` command-line tool."""

    def __init__(self, settings: ServiceSettings):
        self.settings = settings
        self.timeout = settings.native_ocr_timeout

    def find_executable(self) -> Optional[str]:
        if self.settings.tesseract_cmd:
            configured = self.settings.tesseract_cmd
            if Path(configured).is_file() or shutil.which(configured):
                return configured
            logger.warning("TESSERACT_CMD %s is not executable", configured)

        found = shutil.which("tesseract")
        if found:
            return found

        if sys.platform == "win32" and WINDOWS_DEFAULT_TESSERACT.is_file():
            return str(WINDOWS_DEFAULT_TESSERACT)
        return None

    def is_available(self) -> bool:
        return self.find_executable() is not None

    def _fallback_env(self, executable: str) -> Dict[str, str]:
        env = dict(os.environ)
        tessdata = self.settings.tessdata_dir
        if not tessdata:
            candidate = Path(executable).parent / "tessdata"
            tessdata = str(candidate) if candidate.is_dir() else None
        if tessdata:
            env["TESSDATA_PREFIX"] = tessdata
        return env

    def _run(self, executable: str, image_path: str, flags: List[str], env: Optional[Dict[str, str]] = None) -> str:
        args = [executable, image_path, "stdout", *flags]
        try:
            # subprocess.run kills the child when the timeout elapses
            completed = subprocess.run(
                args,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise PipelineError(
                PipelinePhase.NATIVE_OCR,
                f"tesseract timed out after {self.timeout:g}s",
                _clip(exc.stderr),
            ) from exc
        except OSError as exc:
            raise PipelineError(PipelinePhase.NATIVE_OCR, f"tesseract could not start: {exc}") from exc

        if completed.returncode != 0:
            raise PipelineError(
                PipelinePhase.NATIVE_OCR,
                f"tesseract exited with status {completed.returncode}",
                _clip(completed.stderr),
            )

        text = (completed.stdout or "").strip()
        if not text:
            raise PipelineError(PipelinePhase.NATIVE_OCR, "tesseract produced no output", _clip(completed.stderr))
        return text

    def extract_text(self, upload: ReceiptImage) -> str:
        """Return OCR text for ``upload`` or raise :class:`PipelineError`."""
        executable = self.find_executable()
        if executable is None:
            raise PipelineError(PipelinePhase.NATIVE_OCR, "tesseract-not-found")

        payload = upload.content
        suffix = Path(upload.filename or "").suffix or CANONICAL_EXTENSION
        if upload.is_image:
            payload, codec = normalize_image_for_ocr(upload.content)
            if codec:
                suffix = CANONICAL_EXTENSION

        # _run converts subprocess OSErrors, so any OSError here comes from the temp file
        try:
            with temporary_image_file(payload, suffix) as image_path:
                text = self._run_with_retry(executable, image_path)
        except OSError as exc:
            raise PipelineError(PipelinePhase.NATIVE_OCR, f"could not write OCR temp file: {exc}") from exc

        logger.info("Native OCR result length: %d", len(text))
        return text

    def _run_with_retry(self, executable: str, image_path: str) -> str:
        logger.info("Running native tesseract OCR on %s", image_path)
        try:
            return self._run(executable, image_path, PRIMARY_FLAGS)
        except PipelineError as first_error:
            logger.warning("Native tesseract execution failed (first attempt): %s", first_error.message)
            if first_error.detail:
                logger.warning("tesseract stderr: %s", first_error.detail)
            logger.info("Attempting fallback tesseract run (no -l eng, TESSDATA_PREFIX if available)")
            return self._run(executable, image_path, FALLBACK_FLAGS, env=self._fallback_env(executable))


def _clip(stderr) -> Optional[str]:
    if not stderr:
        return None
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return str(stderr)[:STDERR_LIMIT]
