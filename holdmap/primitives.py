# holdmap/primitives.py
"""
Primitive renderer: burns hold markers, labels and Bote/Kante lines onto a
problem canvas.

Lookup tables map the closed enums from models.py to drawing parameters;
the geometry lives in geometry.py and this module is the thin Pillow
drawing adapter over it.
"""

import functools
import math
import os
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from .config import FONT_CANDIDATES, PRIMITIVE_FONT_PATH
from .errors import UnknownPrimitiveSizeType
from .geometry import create_arrow_offset, label_origin, line_anchor_points
from .models import Placement, PrimitiveKind, PrimitiveRecord, SizeClass

Color = Tuple[int, int, int]


# ==========================
# LOOKUP TABLES
# ==========================

@dataclass(frozen=True)
class SizeSpec:
    radius: float
    stroke_width: float


@dataclass(frozen=True)
class LabelSpec:
    text: str
    font_size: float


@dataclass(frozen=True)
class ArrowSpec:
    length: float
    angle: float


SIZE_TABLE = {
    SizeClass.XS: SizeSpec(radius=20.0, stroke_width=4.0),
    SizeClass.S: SizeSpec(radius=30.0, stroke_width=4.0),
    SizeClass.M: SizeSpec(radius=40.0, stroke_width=4.0),
    SizeClass.L: SizeSpec(radius=50.0, stroke_width=4.0),
    SizeClass.XL: SizeSpec(radius=60.0, stroke_width=4.0),
}

LABEL_TABLE = {
    PrimitiveKind.START_HOLD: LabelSpec("S", 60.0),
    PrimitiveKind.START_HOLD_HAND: LabelSpec("手", 60.0),
    PrimitiveKind.START_HOLD_FOOT: LabelSpec("足", 60.0),
    PrimitiveKind.START_HOLD_RIGHT_HAND: LabelSpec("右", 60.0),
    PrimitiveKind.START_HOLD_LEFT_HAND: LabelSpec("左", 60.0),
    PrimitiveKind.GOAL_HOLD: LabelSpec("G", 60.0),
    PrimitiveKind.BOTE: LabelSpec("ボテ", 60.0),
    PrimitiveKind.KANTE: LabelSpec("カンテ", 60.0),
}

# Kinds drawn as label + line instead of a circle
LINE_KINDS = {
    PrimitiveKind.BOTE: ArrowSpec(length=10.0, angle=0.55),
    PrimitiveKind.KANTE: ArrowSpec(length=20.0, angle=math.pi / 2.0),
}


@dataclass(frozen=True)
class Primitive:
    kind: PrimitiveKind
    size: SizeClass
    color: Color
    x: float
    y: float
    # None when the stored value is not a known placement
    placement: Optional[Placement]

    @classmethod
    def from_record(cls, record: PrimitiveRecord) -> "Primitive":
        size = SizeClass.parse(record.sizeType)
        if size is None:
            raise UnknownPrimitiveSizeType(f"unknown primitive sizeType {record.sizeType!r}")
        return cls(
            kind=PrimitiveKind.parse(record.type) or PrimitiveKind.PLAIN_HOLD,
            size=size,
            color=tuple(record.color),
            x=record.positionX,
            y=record.positionY,
            placement=Placement.parse(record.subItemPosition),
        )


def resolve_size(size: SizeClass) -> SizeSpec:
    try:
        return SIZE_TABLE[size]
    except KeyError:
        raise UnknownPrimitiveSizeType(f"unknown primitive size {size!r}") from None


def resolve_label(kind: PrimitiveKind) -> Optional[LabelSpec]:
    return LABEL_TABLE.get(kind)


# ==========================
# FONTS AND TEXT METRICS
# ==========================

def _font_path() -> Optional[str]:
    if PRIMITIVE_FONT_PATH:
        return PRIMITIVE_FONT_PATH
    for p in FONT_CANDIDATES:
        if os.path.exists(p):
            return p
    return None


@functools.lru_cache(maxsize=16)
def load_font(size: int) -> ImageFont.FreeTypeFont:
    """Label font at the given pixel size."""
    path = _font_path()
    if path:
        return ImageFont.truetype(path, size=size)
    return ImageFont.load_default(size=size)


def measure_text(draw: ImageDraw.ImageDraw, text: str, font) -> Tuple[float, float]:
    """
    Width from the font's advance; height approximated as width / len(text).

    The height is only exact for square glyphs, and every label anchor is
    computed from it.
    """
    width = draw.textlength(text, font=font)
    return width, width / len(text)


# ==========================
# RENDERER
# ==========================

class PrimitiveRenderer:
    """Draws primitives in order; the output is a pure function of the inputs."""

    def __init__(self, font_loader=load_font):
        self.font_loader = font_loader

    def render(
        self,
        canvas: Image.Image,
        primitives: Iterable[Primitive],
        offset: Tuple[float, float] = (0.0, 0.0),
    ) -> Image.Image:
        draw = ImageDraw.Draw(canvas)
        for primitive in primitives:
            self.draw_primitive(draw, primitive, offset)
        return canvas

    def draw_primitive(
        self,
        draw: ImageDraw.ImageDraw,
        primitive: Primitive,
        offset: Tuple[float, float],
    ) -> None:
        x = primitive.x + offset[0]
        y = primitive.y + offset[1]
        color = primitive.color

        size = resolve_size(primitive.size)
        stroke = int(size.stroke_width)
        radius = size.radius

        label = resolve_label(primitive.kind)
        font = None
        text_w = text_h = 0.0
        if label is not None:
            font = self.font_loader(int(label.font_size))
            text_w, text_h = measure_text(draw, label.text, font)

        arrow = LINE_KINDS.get(primitive.kind)
        if arrow is not None:
            draw.text((x - text_w / 2.0, y), label.text, fill=color, font=font, anchor="lm")
            anchors = line_anchor_points(x, y, text_w, text_h, primitive.placement, radius)
            if anchors is None:
                return
            p1, p2 = anchors
            barb_a, barb_b = create_arrow_offset(p1, p2, arrow.length, arrow.angle)
            draw.line([p1, p2], fill=color, width=stroke)
            draw.line([barb_a, p2, barb_b], fill=color, width=stroke, joint="curve")
            return

        # Stroke centred on the radius
        half = stroke / 2.0
        draw.ellipse(
            [x - radius - half, y - radius - half, x + radius + half, y + radius + half],
            outline=color,
            width=stroke,
        )

        if label is not None:
            origin = label_origin(x, y, radius, text_w, text_h, primitive.placement)
            draw.text(origin, label.text, fill=color, font=font, anchor="lm")


def render_primitives(
    canvas: Image.Image,
    primitives: Iterable[Primitive],
    offset: Tuple[float, float] = (0.0, 0.0),
) -> Image.Image:
    return PrimitiveRenderer().render(canvas, primitives, offset)
