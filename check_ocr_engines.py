#!/usr/bin/env python3
"""Report which receipt parsing backends this machine can use."""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv


def main():
    load_dotenv()

    from receipt_service.ocr.tesseract_ocr import TesseractOCR
    from receipt_service.services.config_service import ServiceSettings

    settings = ServiceSettings.from_env()

    print("🔍 Checking receipt parsing backends...")
    print()
    print("📋 Environment Variables:")
    print(f"  APP_ENV:           {settings.environment}")
    print(f"  TESSERACT_CMD:     {settings.tesseract_cmd or '(not set)'}")
    print(f"  TESSDATA_DIR:      {settings.tessdata_dir or '(not set)'}")
    print(f"  OCR_SPACE_API_KEY: {'SET' if settings.cloud_ocr_configured else 'NOT SET'}")
    print(f"  LLM_API_KEY:       {'SET' if settings.llm_configured else 'NOT SET'}")
    print(f"  LLM_API_URL:       {settings.llm_api_url}")
    print()

    executable = TesseractOCR(settings).find_executable()
    backends = [
        ("tesseract", executable is not None, executable or "not found on PATH"),
        ("ocr_space", settings.cloud_ocr_configured, settings.ocr_space_api_url),
        ("llm", settings.llm_configured, settings.llm_model),
    ]

    print("🔧 Backend Status:")
    for name, available, note in backends:
        status = "✅ Available" if available else "❌ Not Available"
        print(f"  {name:12s}: {status}  ({note})")
    print()

    if not (backends[0][1] or backends[1][1]):
        print("⚠️  No OCR backend available: install tesseract or set OCR_SPACE_API_KEY")
        return 1
    print("✅ At least one OCR backend is available")
    return 0


if __name__ == "__main__":
    sys.exit(main())
