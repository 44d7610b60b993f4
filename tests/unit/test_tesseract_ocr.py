import os
import subprocess
from unittest.mock import patch

import pytest

from receipt_service.models.schema import ReceiptImage
from receipt_service.ocr.tesseract_ocr import TesseractOCR, temporary_image_file
from receipt_service.services.config_service import ServiceSettings
from receipt_service.utils.helpers.exceptions import PipelineError, PipelinePhase

TESSERACT = "/usr/bin/tesseract"


class FakeTesseract:
    """Records each invocation and the bytes of the input file at call time."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, args, **kwargs):
        with open(args[1], "rb") as handle:
            written = handle.read()
        self.calls.append({"args": args, "kwargs": kwargs, "path": args[1], "written": written})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        returncode, stdout, stderr = outcome
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def which_tesseract():
    with patch("receipt_service.ocr.tesseract_ocr.shutil.which", return_value=TESSERACT) as mocked:
        yield mocked


def test_missing_executable_fails_without_spawning(receipt_image):
    with patch("receipt_service.ocr.tesseract_ocr.shutil.which", return_value=None), \
         patch("receipt_service.ocr.tesseract_ocr.sys.platform", "linux"), \
         patch("receipt_service.ocr.tesseract_ocr.subprocess.run") as run:
        ocr = TesseractOCR(ServiceSettings())
        with pytest.raises(PipelineError) as excinfo:
            ocr.extract_text(receipt_image)
        assert ocr.is_available() is False

    assert excinfo.value.phase is PipelinePhase.NATIVE_OCR
    run.assert_not_called()


def test_primary_invocation_and_cleanup(which_tesseract, receipt_image):
    fake = FakeTesseract((0, "Fresh Mart\nTotal 9.99\n", ""))
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake):
        text = TesseractOCR(ServiceSettings()).extract_text(receipt_image)

    assert text == "Fresh Mart\nTotal 9.99"
    call = fake.calls[0]
    assert call["args"] == [TESSERACT, call["path"], "stdout", "-l", "eng", "--oem", "1", "--psm", "3"]
    assert call["kwargs"]["timeout"] == 8.0
    assert call["path"].endswith(".png")
    assert call["written"].startswith(b"\x89PNG")
    assert not os.path.exists(call["path"])


def test_retries_with_fallback_profile(which_tesseract, receipt_image, tmp_path):
    fake = FakeTesseract(
        (1, "", "Error opening data file eng.traineddata"),
        (0, "Total 5.00", ""),
    )
    settings = ServiceSettings(tessdata_dir=str(tmp_path))
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake):
        text = TesseractOCR(settings).extract_text(receipt_image)

    assert text == "Total 5.00"
    retry = fake.calls[1]
    assert "-l" not in retry["args"]
    assert retry["args"][2:] == ["stdout", "--oem", "1", "--psm", "3"]
    assert retry["kwargs"]["env"]["TESSDATA_PREFIX"] == str(tmp_path)
    assert retry["path"] == fake.calls[0]["path"]
    assert not os.path.exists(retry["path"])


def test_empty_output_triggers_retry(which_tesseract, receipt_image):
    fake = FakeTesseract((0, "   \n", ""), (0, "Total 1.00", ""))
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake):
        assert TesseractOCR(ServiceSettings()).extract_text(receipt_image) == "Total 1.00"
    assert len(fake.calls) == 2


def test_both_attempts_failing_raises_with_stderr(which_tesseract, receipt_image):
    fake = FakeTesseract((1, "", "first failure"), (1, "", "second failure"))
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake):
        with pytest.raises(PipelineError) as excinfo:
            TesseractOCR(ServiceSettings()).extract_text(receipt_image)

    assert excinfo.value.phase is PipelinePhase.NATIVE_OCR
    assert excinfo.value.detail == "second failure"
    assert not os.path.exists(fake.calls[0]["path"])


def test_timeout_is_reported_and_file_removed(which_tesseract, receipt_image):
    timeout = subprocess.TimeoutExpired(cmd="tesseract", timeout=8)
    fake = FakeTesseract(timeout, timeout)
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake):
        with pytest.raises(PipelineError) as excinfo:
            TesseractOCR(ServiceSettings()).extract_text(receipt_image)

    assert "timed out" in excinfo.value.message
    assert not os.path.exists(fake.calls[-1]["path"])


def test_undecodable_image_is_sent_unmodified(which_tesseract):
    upload = ReceiptImage(content=b"not really a jpeg", media_type="image/jpeg", filename="scan.jpg")
    fake = FakeTesseract((0, "text", ""))
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake):
        TesseractOCR(ServiceSettings()).extract_text(upload)

    assert fake.calls[0]["written"] == b"not really a jpeg"
    assert fake.calls[0]["path"].endswith(".jpg")


def test_non_image_media_type_skips_normalization(which_tesseract, png_bytes):
    upload = ReceiptImage(content=png_bytes, media_type="application/octet-stream", filename="upload.bin")
    fake = FakeTesseract((0, "text", ""))
    with patch("receipt_service.ocr.tesseract_ocr.subprocess.run", side_effect=fake), \
         patch("receipt_service.ocr.tesseract_ocr.normalize_image_for_ocr") as normalize:
        TesseractOCR(ServiceSettings()).extract_text(upload)

    normalize.assert_not_called()
    assert fake.calls[0]["path"].endswith(".bin")


def test_configured_command_takes_priority(tmp_path):
    binary = tmp_path / "tesseract-custom"
    binary.write_text("#!/bin/sh\n")
    with patch("receipt_service.ocr.tesseract_ocr.shutil.which", return_value=TESSERACT):
        ocr = TesseractOCR(ServiceSettings(tesseract_cmd=str(binary)))
        assert ocr.find_executable() == str(binary)


def test_temporary_file_removed_when_body_raises():
    with pytest.raises(RuntimeError):
        with temporary_image_file(b"data", ".png") as path:
            assert os.path.exists(path)
            raise RuntimeError("crash during OCR")
    assert not os.path.exists(path)


def test_unwritable_temp_dir_becomes_pipeline_error(which_tesseract, receipt_image):
    disk_full = OSError(28, "No space left on device")
    with patch("receipt_service.ocr.tesseract_ocr.tempfile.NamedTemporaryFile", side_effect=disk_full), \
         patch("receipt_service.ocr.tesseract_ocr.subprocess.run") as run:
        with pytest.raises(PipelineError) as excinfo:
            TesseractOCR(ServiceSettings()).extract_text(receipt_image)

    assert excinfo.value.phase is PipelinePhase.NATIVE_OCR
    assert "temp file" in excinfo.value.message
    run.assert_not_called()
