from __future__ import annotations

import base64
import io
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

from family_api.errors import ValidationError
from family_api.imaging import CROP_SIZE, CropJob, crop_to_square, decode_image_payload, to_data_uri


def _png(size: tuple[int, int], color, mode: str = "RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, "PNG")
    return buf.getvalue()


def _open(jpeg: bytes) -> Image.Image:
    return Image.open(io.BytesIO(jpeg))


def test_output_is_a_fixed_size_jpeg() -> None:
    out = _open(crop_to_square(_png((300, 120), (0, 0, 255))))

    assert out.format == "JPEG"
    assert out.size == (CROP_SIZE, CROP_SIZE)


def test_offset_reveals_white_background() -> None:
    out = _open(crop_to_square(_png((100, 100), (0, 0, 0)), offset_x=100)).convert("RGB")

    # Shifted right by half the canvas: the left half is uncovered.
    r, g, b = out.getpixel((10, 300))
    assert min(r, g, b) > 240
    r, g, b = out.getpixel((500, 300))
    assert max(r, g, b) < 15


def test_transparent_pixels_become_white() -> None:
    out = _open(crop_to_square(_png((50, 50), (255, 0, 0, 0), mode="RGBA"))).convert("RGB")

    assert min(out.getpixel((300, 300))) > 240


def test_zoom_and_offsets_are_clamped() -> None:
    data = _png((64, 64), (10, 200, 10))

    assert crop_to_square(data, zoom=10, offset_x=-500) == crop_to_square(data, zoom=3, offset_x=-100)


def test_unreadable_image_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        crop_to_square(b"definitely not an image")


def test_payload_decoding() -> None:
    raw = _png((2, 2), (1, 2, 3))
    uri = "data:image/png;base64," + base64.b64encode(raw).decode()

    assert decode_image_payload(uri) == raw
    assert decode_image_payload(base64.b64encode(raw).decode()) == raw
    with pytest.raises(ValidationError):
        decode_image_payload("data:image/png,plain")
    with pytest.raises(ValidationError):
        decode_image_payload("")
    assert to_data_uri(b"\xff\xd8").startswith("data:image/jpeg;base64,")


def test_crop_job_result() -> None:
    with ThreadPoolExecutor(max_workers=1) as pool:
        job = CropJob(pool, _png((30, 30), (0, 0, 0)), zoom=2)

        uri = job.result(timeout=10)

    assert uri.startswith("data:image/jpeg;base64,")
    assert job.done()


def test_queued_crop_job_can_be_abandoned() -> None:
    gate = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as pool:
        blocker = pool.submit(gate.wait)
        job = CropJob(pool, _png((30, 30), (0, 0, 0)))

        assert job.cancel()
        gate.set()
        blocker.result(timeout=10)

    assert job.done()
