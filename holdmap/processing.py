# holdmap/processing.py
"""
Pixel work for the image pipelines.

Codec helpers, the EXIF orientation reader, the canvas compositor that
produces the trimmed base picture, the thumbnail fitter and the base layer of
a completed problem image. Layout decisions come from geometry.py; this
module only moves pixels.
"""

import io
from typing import Optional

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import JPEG_QUALITY, THUMB_SIZE
from .errors import DecodeFailure, InvalidImageDimensions, InvalidTrimGeometry
from .geometry import CompositePlan, ProblemCanvasPlan, plan_thumbnail
from .utils import image_format_for


ORIENTATION_TAG = 0x0112


# ==========================
# CODEC HELPERS
# ==========================

def decode_image(data: bytes) -> Image.Image:
    """Decode bytes into a fully loaded PIL image. EXIF orientation is not applied."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise DecodeFailure(f"cannot decode image: {exc}") from exc
    if img.width < 1 or img.height < 1:
        raise InvalidImageDimensions(f"decoded image is {img.width}x{img.height}")
    return img


def encode_image(img: Image.Image, content_type: str, quality: int = JPEG_QUALITY) -> bytes:
    """Encode an image in the format matching content_type."""
    fmt = image_format_for(content_type)
    buf = io.BytesIO()
    if fmt == "JPEG":
        # JPEG has no alpha; transparent pixels come out black
        img.convert("RGB").save(buf, format="JPEG", quality=quality)
    else:
        img.save(buf, format=fmt)
    return buf.getvalue()


def read_orientation(data: bytes) -> Optional[int]:
    """EXIF orientation code of an encoded image, or None. Never raises."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            value = img.getexif().get(ORIENTATION_TAG)
    except Exception:
        return None
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _working_mode(img: Image.Image) -> str:
    if img.mode in ("RGBA", "LA") or "transparency" in img.info:
        return "RGBA"
    return "RGB"


# ==========================
# CANVAS COMPOSITOR
# ==========================

def composite(img: Image.Image, plan: CompositePlan) -> Image.Image:
    """
    Crop, scale and rotate img onto a plan.dw x plan.dh canvas.

    The crop is first scaled to the pre-rotation draw rectangle, then placed
    with the plan's affine. Quarter turns are exact so every canvas pixel is
    covered.
    """
    mode = _working_mode(img)
    src = np.array(img.convert(mode))

    x0, y0, x1, y1 = plan.crop_box
    crop = src[y0:y1, x0:x1]
    if crop.shape[0] == 0 or crop.shape[1] == 0:
        raise InvalidTrimGeometry(f"crop box {plan.crop_box} is empty")

    resized = cv2.resize(crop, (plan.draw_w, plan.draw_h), interpolation=cv2.INTER_AREA)

    # The plan works on pixel edges; warpAffine samples pixel centres
    linear = plan.matrix[:, :2]
    shift = plan.matrix[:, 2] + linear @ np.array([0.5, 0.5]) - np.array([0.5, 0.5])
    M = np.hstack([linear, shift.reshape(2, 1)]).astype(np.float64)

    out = cv2.warpAffine(
        resized,
        M,
        (plan.dw, plan.dh),
        flags=cv2.INTER_NEAREST,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    return Image.fromarray(out)


# ==========================
# THUMBNAIL FITTER
# ==========================

def make_thumbnail(img: Image.Image, size: int = THUMB_SIZE) -> Image.Image:
    """Fit img inside a transparent size x size square, centred."""
    plan = plan_thumbnail(img.width, img.height, size)
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))

    dw = max(1, int(round(plan.dw)))
    dh = max(1, int(round(plan.dh)))
    resized = img.convert("RGBA").resize((dw, dh), Image.Resampling.LANCZOS)
    canvas.alpha_composite(resized, dest=(int(round(plan.x)), int(round(plan.y))))
    return canvas


# ==========================
# PROBLEM BASE LAYER
# ==========================

def compose_problem_base(img: Image.Image, plan: ProblemCanvasPlan) -> Image.Image:
    """Base picture shifted by the trim offset onto the problem canvas."""
    canvas = Image.new("RGB", (plan.width, plan.height))
    canvas.paste(img.convert("RGB"), (int(round(plan.offset_x)), int(round(plan.offset_y))))
    return canvas
