"""Portrait crop endpoint."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as CropTimeout

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..deps import get_crop_executor
from ..errors import ValidationError
from ..imaging import OFFSET_RANGE, ZOOM_RANGE, CropJob, decode_image_payload

log = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])

CROP_TIMEOUT_SECONDS = 30.0


class CropRequest(BaseModel):
    image: str
    zoom: float = Field(default=1.0, ge=ZOOM_RANGE[0], le=ZOOM_RANGE[1])
    offsetX: float = Field(default=0.0, ge=OFFSET_RANGE[0], le=OFFSET_RANGE[1])
    offsetY: float = Field(default=0.0, ge=OFFSET_RANGE[0], le=OFFSET_RANGE[1])


@router.post("/crop")
def crop(body: CropRequest, executor: ThreadPoolExecutor = Depends(get_crop_executor)) -> dict[str, str]:
    try:
        data = decode_image_payload(body.image)
        job = CropJob(executor, data, zoom=body.zoom, offset_x=body.offsetX, offset_y=body.offsetY)
        return {"photoUrl": job.result(timeout=CROP_TIMEOUT_SECONDS)}
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": str(e), "field": e.field}) from e
    except CropTimeout as e:
        job.cancel()
        log.error("Photo crop did not finish within %.0fs", CROP_TIMEOUT_SECONDS)
        raise HTTPException(
            status_code=504,
            detail={"error": "Failed to crop photo", "details": f"timed out after {CROP_TIMEOUT_SECONDS:.0f}s"},
        ) from e
