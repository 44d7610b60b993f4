import io
import logging
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

CANONICAL_EXTENSION = ".png"


def _normalize_with_pillow(image_bytes: bytes) -> bytes:
    with Image.open(io.BytesIO(image_bytes)) as image:
        if image.mode not in ("RGB", "L", "RGBA"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=True)
        return buffer.getvalue()


def _normalize_with_opencv(image_bytes: bytes) -> bytes:
    array = np.frombuffer(image_bytes, dtype=np.uint8)
    decoded = cv2.imdecode(array, cv2.IMREAD_COLOR)
    if decoded is None:
        raise ValueError("OpenCV could not decode image")
    ok, encoded = cv2.imencode(CANONICAL_EXTENSION, decoded)
    if not ok:
        raise ValueError("OpenCV could not encode PNG")
    return encoded.tobytes()


def normalize_image_for_ocr(image_bytes: bytes) -> Tuple[bytes, Optional[str]]:
    """Re-encode an upload as PNG so the OCR engine sees a format it reads well.

    Pillow is tried first, OpenCV second. When both fail the original bytes
    are returned with ``None`` as the codec name; normalization never fails
    the caller.
    """
    for codec, normalize in (("pillow", _normalize_with_pillow), ("opencv", _normalize_with_opencv)):
        try:
            converted = normalize(image_bytes)
        except Exception as exc:
            logger.warning("%s conversion failed, trying next codec: %s", codec, exc)
            continue
        logger.info("Converted upload to PNG via %s before OCR", codec)
        return converted, codec

    logger.warning("Image normalization failed, using original bytes")
    return image_bytes, None
