import io

from PIL import Image

from receipt_service.utils.image_processing import normalize_image_for_ocr


def test_jpeg_is_reencoded_as_png():
    buffer = io.BytesIO()
    Image.new("RGB", (30, 30), color="gray").save(buffer, format="JPEG")

    converted, codec = normalize_image_for_ocr(buffer.getvalue())

    assert codec == "pillow"
    assert converted.startswith(b"\x89PNG")


def test_palette_image_is_converted():
    buffer = io.BytesIO()
    Image.new("P", (10, 10)).save(buffer, format="GIF")

    converted, codec = normalize_image_for_ocr(buffer.getvalue())

    assert codec == "pillow"
    with Image.open(io.BytesIO(converted)) as image:
        assert image.format == "PNG"
        assert image.mode == "RGB"


def test_undecodable_bytes_are_returned_unchanged():
    converted, codec = normalize_image_for_ocr(b"definitely not an image")

    assert codec is None
    assert converted == b"definitely not an image"
