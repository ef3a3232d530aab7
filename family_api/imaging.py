"""Portrait crop: square JPEG from an uploaded photo, zoom and offset.

The photo is scaled to cover the square, multiplied by ``zoom`` and shifted by
``offset_x``/``offset_y`` (percent of half the output size), then flattened
onto a white background.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from concurrent.futures import Executor, Future
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import ValidationError

log = logging.getLogger(__name__)

CROP_SIZE = 600
JPEG_QUALITY = 90
ZOOM_RANGE = (1.0, 3.0)
OFFSET_RANGE = (-100.0, 100.0)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    lo, hi = bounds
    return max(lo, min(hi, float(value)))


def decode_image_payload(payload: str) -> bytes:
    """Accept a ``data:image/...;base64,`` URI or bare base64 text."""

    s = (payload or "").strip()
    if s.startswith("data:"):
        header, _, s = s.partition(",")
        if ";base64" not in header:
            raise ValidationError("image data URI must be base64 encoded", field="image")
    if not s:
        raise ValidationError("image is required", field="image")
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("image is not valid base64", field="image") from None


def to_data_uri(jpeg: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")


def crop_to_square(
    data: bytes,
    *,
    zoom: float = 1.0,
    offset_x: float = 0.0,
    offset_y: float = 0.0,
    size: int = CROP_SIZE,
) -> bytes:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"unreadable image: {e}", field="image") from None

    zoom = _clamp(zoom, ZOOM_RANGE)
    offset_x = _clamp(offset_x, OFFSET_RANGE)
    offset_y = _clamp(offset_y, OFFSET_RANGE)

    if img.mode not in ("RGBA", "RGB"):
        img = img.convert("RGBA")

    scale = max(size / img.width, size / img.height) * zoom
    draw_w = img.width * scale
    draw_h = img.height * scale
    dx = size / 2 - draw_w / 2 + (offset_x / 100) * (size / 2)
    dy = size / 2 - draw_h / 2 + (offset_y / 100) * (size / 2)

    canvas = Image.new("RGB", (size, size), (255, 255, 255))

    # Only resample the part of the photo that lands on the canvas.
    left, top = max(0, round(dx)), max(0, round(dy))
    right, bottom = min(size, round(dx + draw_w)), min(size, round(dy + draw_h))
    if right > left and bottom > top:
        box = (
            (left - dx) / scale,
            (top - dy) / scale,
            (right - dx) / scale,
            (bottom - dy) / scale,
        )
        region = img.resize((right - left, bottom - top), Image.LANCZOS, box=box)
        mask = region.getchannel("A") if region.mode == "RGBA" else None
        canvas.paste(region.convert("RGB"), (left, top), mask)

    out = io.BytesIO()
    canvas.save(out, "JPEG", quality=JPEG_QUALITY)
    log.debug("Cropped %dx%d photo (zoom=%.2f, x=%.0f, y=%.0f)", img.width, img.height, zoom, offset_x, offset_y)
    return out.getvalue()


class CropJob:
    """A crop running on an executor; nothing is kept unless ``result()`` is read."""

    def __init__(
        self,
        executor: Executor,
        data: bytes,
        *,
        zoom: float = 1.0,
        offset_x: float = 0.0,
        offset_y: float = 0.0,
    ) -> None:
        self._future: Future[bytes] = executor.submit(
            crop_to_square, data, zoom=zoom, offset_x=offset_x, offset_y=offset_y
        )

    def cancel(self) -> bool:
        cancelled = self._future.cancel()
        if cancelled:
            log.info("Crop cancelled before it started")
        return cancelled

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> str:
        return to_data_uri(self._future.result(timeout=timeout))
