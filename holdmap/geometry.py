# holdmap/geometry.py
"""
Pure geometry for the image pipelines.

Nothing in here touches pixels: orientation resolution, trim planning, the
four compositing recipes, thumbnail layout and the anchor math used by the
primitive renderer are all plain functions of numbers, so they can be
checked without a drawing backend.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import (
    InvalidImageDimensions,
    InvalidPlacement,
    InvalidTrimGeometry,
    OrientationUnsupported,
)
from .logger import log_warning
from .models import Placement, TrimSpec

Point = Tuple[float, float]


# ==========================
# BASIC HELPERS
# ==========================

def rotate_point(x: float, y: float, radian: float) -> Point:
    """Rotate (x, y) about the origin."""
    cosr = math.cos(radian)
    sinr = math.sin(radian)
    return x * cosr - y * sinr, x * sinr + y * cosr


def create_arrow_offset(
    p1: Point,
    p2: Point,
    length: float,
    angle: float,
) -> Tuple[Point, Point]:
    """
    Return the two arrowhead barb end points for a line p1 -> p2.

    Each barb starts at p2, points back along the line and is turned by
    +angle / -angle respectively.
    """
    vx = p1[0] - p2[0]
    vy = p1[1] - p2[1]
    d = math.hypot(vx, vy)
    if d == 0:
        return p2, p2
    vx = vx / d * length
    vy = vy / d * length

    ax, ay = rotate_point(vx, vy, angle)
    bx, by = rotate_point(vx, vy, -angle)
    return (ax + p2[0], ay + p2[1]), (bx + p2[0], by + p2[1])


def aspect_fit_scale(width: float, height: float, box: float) -> float:
    """Largest scale at which width x height still fits inside a box x box square."""
    if width <= 0 or height <= 0:
        raise InvalidImageDimensions(f"image must be at least 1x1, got {width}x{height}")
    scale_x = box / width
    scale_y = box / height
    return scale_x if scale_x < scale_y else scale_y


# ==========================
# ORIENTATION
# ==========================

EXIF_ANGLES = {1: 0, 3: 180, 6: 90, 8: 270}

# (cos, sin) for the four right angles, exact
_RIGHT_ANGLES = {0: (1, 0), 90: (0, 1), 180: (-1, 0), 270: (0, -1)}


def exif_orientation_angle(orientation: Optional[int]) -> int:
    if orientation not in EXIF_ANGLES:
        raise OrientationUnsupported(f"EXIF orientation {orientation!r} is not supported")
    return EXIF_ANGLES[orientation]


def resolve_effective_angle(exif_orientation: Optional[int], user_rotation: int) -> int:
    """
    Combine the camera orientation with the user's rotation.

    user_rotation must be one of 0/90/180/270; other values are not checked.
    """
    try:
        exif_angle = exif_orientation_angle(exif_orientation)
    except OrientationUnsupported as exc:
        log_warning(f"{exc}, assuming angle 0")
        exif_angle = 0
    return (exif_angle + user_rotation) % 360


# ==========================
# TRIM / CROP PLANNING
# ==========================

@dataclass(frozen=True)
class PixelTrim:
    """Absolute trim amounts, in pixels of the displayed orientation's edges."""

    left: float
    right: float
    top: float
    bottom: float


def plan_trim(angle: int, width: int, height: int, trim: TrimSpec) -> PixelTrim:
    """
    Turn trim fractions into pixels.

    Fractions refer to the displayed image, so for quarter turns the
    left/right pair is measured along the raw height and top/bottom along
    the raw width.
    """
    if angle in (90, 270):
        horizontal, vertical = height, width
    else:
        horizontal, vertical = width, height
    return PixelTrim(
        left=trim.left * horizontal,
        right=trim.right * horizontal,
        top=trim.top * vertical,
        bottom=trim.bottom * vertical,
    )


@dataclass(frozen=True)
class CompositePlan:
    angle: int
    # Source crop in raw pixel space
    sx: float
    sy: float
    sw: float
    sh: float
    # Destination canvas
    dw: int
    dh: int
    # Pre-rotation draw rectangle
    draw_x: float
    draw_y: float
    draw_w: int
    draw_h: int
    translate: Point
    # 2x3 affine from draw-rectangle pixels to canvas pixels
    matrix: np.ndarray

    @property
    def crop_box(self) -> Tuple[int, int, int, int]:
        """Crop rectangle as integer (left, top, right, bottom)."""
        return (
            int(round(self.sx)),
            int(round(self.sy)),
            int(round(self.sx + self.sw)),
            int(round(self.sy + self.sh)),
        )


def _source_crop(angle: int, width: int, height: int, px: PixelTrim) -> Tuple[float, float, float, float]:
    if angle == 90:
        return px.top, px.right, width - px.top - px.bottom, height - px.left - px.right
    if angle == 180:
        return px.right, px.bottom, width - px.left - px.right, height - px.top - px.bottom
    if angle == 270:
        return px.bottom, px.left, width - px.top - px.bottom, height - px.left - px.right
    return px.left, px.top, width - px.left - px.right, height - px.top - px.bottom


def plan_composite(
    angle: int,
    width: int,
    height: int,
    trim: TrimSpec,
    target: int,
) -> CompositePlan:
    """
    Plan the crop, scale and rotation producing the trimmed base picture.

    The long edge of the result is always exactly `target`, small crops
    included.
    """
    if angle not in _RIGHT_ANGLES:
        raise ValueError(f"effective angle must be 0, 90, 180 or 270, got {angle}")
    if width <= 0 or height <= 0:
        raise InvalidImageDimensions(f"image must be at least 1x1, got {width}x{height}")

    px = plan_trim(angle, width, height, trim)
    sx, sy, sw, sh = _source_crop(angle, width, height, px)
    if sw <= 0 or sh <= 0:
        raise InvalidTrimGeometry(
            f"trim {trim.left}/{trim.right}/{trim.top}/{trim.bottom} leaves a {sw:.1f}x{sh:.1f} crop"
        )

    quarter_turn = angle in (90, 270)
    disp_w, disp_h = (sh, sw) if quarter_turn else (sw, sh)
    scale = target / max(disp_w, disp_h)
    dw = max(1, int(round(disp_w * scale)))
    dh = max(1, int(round(disp_h * scale)))

    if quarter_turn:
        draw_w, draw_h = dh, dw
    else:
        draw_w, draw_h = dw, dh

    if angle == 90:
        translate, draw_x, draw_y = (0.0, float(dh)), float(-dh), float(-dw)
    elif angle == 180:
        translate, draw_x, draw_y = (0.0, 0.0), float(-dw), float(-dh)
    elif angle == 270:
        translate, draw_x, draw_y = (0.0, float(dh)), 0.0, 0.0
    else:
        translate, draw_x, draw_y = (0.0, 0.0), 0.0, 0.0

    cos, sin = _RIGHT_ANGLES[angle]
    rot = np.array([[cos, -sin], [sin, cos]], dtype=np.float64)
    offset = rot @ np.array([draw_x, draw_y]) + np.array(translate)
    matrix = np.hstack([rot, offset.reshape(2, 1)])

    return CompositePlan(
        angle=angle,
        sx=sx, sy=sy, sw=sw, sh=sh,
        dw=dw, dh=dh,
        draw_x=draw_x, draw_y=draw_y, draw_w=draw_w, draw_h=draw_h,
        translate=translate,
        matrix=matrix,
    )


def transform_point(plan: CompositePlan, u: float, v: float) -> Point:
    """Map a point of the draw rectangle onto the canvas."""
    x, y = plan.matrix @ np.array([u, v, 1.0])
    return float(x), float(y)


# ==========================
# THUMBNAIL LAYOUT
# ==========================

@dataclass(frozen=True)
class ThumbnailPlan:
    scale: float
    dw: float
    dh: float
    x: float
    y: float


def plan_thumbnail(width: int, height: int, size: int) -> ThumbnailPlan:
    scale = aspect_fit_scale(width, height, size)
    dw = width * scale
    dh = height * scale
    return ThumbnailPlan(scale=scale, dw=dw, dh=dh, x=(size - dw) / 2, y=(size - dh) / 2)


# ==========================
# PROBLEM CANVAS
# ==========================

@dataclass(frozen=True)
class ProblemCanvasPlan:
    width: int
    height: int
    offset_x: float
    offset_y: float


def plan_problem_canvas(width: int, height: int, trim: TrimSpec) -> ProblemCanvasPlan:
    """Canvas for the completed problem image: the base picture minus the trim."""
    canvas_w = int(width * (1.0 - trim.left - trim.right))
    canvas_h = int(height * (1.0 - trim.top - trim.bottom))
    if canvas_w <= 0 or canvas_h <= 0:
        raise InvalidTrimGeometry(
            f"trim {trim.left}/{trim.right}/{trim.top}/{trim.bottom} leaves a {canvas_w}x{canvas_h} canvas"
        )
    return ProblemCanvasPlan(
        width=canvas_w,
        height=canvas_h,
        offset_x=-width * trim.left,
        offset_y=-height * trim.top,
    )


# ==========================
# LABEL ANCHORS
# ==========================

def line_anchor_points(
    x: float,
    y: float,
    text_width: float,
    text_height: float,
    placement: Optional[Placement],
    radius: float,
) -> Optional[Tuple[Point, Point]]:
    """
    Start and end of the line drawn from a label centred on (x, y).

    The line leaves the text box on the placement side and runs 2 * radius.
    Center has no line.
    """
    left = x - text_width / 2.0
    top = y - text_height / 2.0
    length = radius * 2.0

    if placement is Placement.CENTER:
        return None
    if placement is Placement.RIGHT:
        p1 = (left + text_width, top + text_height / 2.0)
        return p1, (p1[0] + length, p1[1])
    if placement is Placement.BOTTOM:
        p1 = (left + text_width / 2.0, top + text_height)
        return p1, (p1[0], p1[1] + length)
    if placement is Placement.LEFT:
        p1 = (left, top + text_height / 2.0)
        return p1, (p1[0] - length, p1[1])
    if placement is Placement.TOP:
        p1 = (left + text_width / 2.0, top)
        return p1, (p1[0], p1[1] - length)
    raise InvalidPlacement(f"unknown placement {placement!r}")


def label_origin(
    x: float,
    y: float,
    radius: float,
    text_width: float,
    text_height: float,
    placement: Optional[Placement],
) -> Point:
    """Left/middle text origin for a label next to a circle centred on (x, y)."""
    if placement is Placement.CENTER:
        return x - text_width / 2.0, y
    if placement is Placement.RIGHT:
        return x + radius, y
    if placement is Placement.BOTTOM:
        return x - text_width / 2.0, y + radius
    if placement is Placement.LEFT:
        return x - radius - text_width, y
    if placement is Placement.TOP:
        return x - text_width / 2.0, y - radius - text_height
    raise InvalidPlacement(f"unknown placement {placement!r}")
