import io

import pytest
from PIL import Image

from holdmap.errors import DecodeFailure
from holdmap.geometry import plan_composite, plan_problem_canvas
from holdmap.models import TrimSpec
from holdmap.processing import (
    compose_problem_base,
    composite,
    decode_image,
    encode_image,
    make_thumbnail,
    read_orientation,
)

RED = (255, 0, 0)
BLUE = (0, 0, 255)


def _two_tone(width=200, height=100):
    img = Image.new("RGB", (width, height), RED)
    img.paste(Image.new("RGB", (width // 2, height), BLUE), (width // 2, 0))
    return img


def _is(pixel, color):
    return all(abs(a - b) < 30 for a, b in zip(pixel[:3], color))


# ==========================
# COMPOSITOR
# ==========================

@pytest.mark.parametrize(
    "angle, size, red_at, blue_at",
    [
        (0, (100, 50), (10, 25), (90, 25)),
        (90, (50, 100), (25, 10), (25, 90)),
        (180, (100, 50), (90, 25), (10, 25)),
        (270, (50, 100), (25, 90), (25, 10)),
    ],
)
def test_composite_orients_content(angle, size, red_at, blue_at):
    img = _two_tone()
    plan = plan_composite(angle, img.width, img.height, TrimSpec(), 100)
    out = composite(img, plan)

    assert out.size == size
    assert _is(out.getpixel(red_at), RED)
    assert _is(out.getpixel(blue_at), BLUE)


@pytest.mark.parametrize("angle", [0, 90, 180, 270])
def test_composite_leaves_no_blank_border(angle):
    img = _two_tone(320, 240)
    plan = plan_composite(angle, img.width, img.height, TrimSpec(left=0.1, bottom=0.2), 120)
    out = composite(img, plan)
    w, h = out.size
    for corner in [(0, 0), (w - 1, 0), (0, h - 1), (w - 1, h - 1)]:
        assert out.getpixel(corner) != (0, 0, 0)


def test_composite_trims_displayed_edge():
    # Blue right half removed entirely by trimming the right half
    img = _two_tone()
    plan = plan_composite(0, img.width, img.height, TrimSpec(right=0.5), 100)
    out = composite(img, plan)
    assert out.size == (100, 100)
    assert _is(out.getpixel((99, 50)), RED)


# ==========================
# THUMBNAIL
# ==========================

def test_thumbnail_is_centred_with_transparent_padding():
    thumb = make_thumbnail(Image.new("RGB", (400, 100), RED), 200)
    assert thumb.size == (200, 200)
    assert thumb.mode == "RGBA"

    assert thumb.getpixel((100, 10))[3] == 0
    assert thumb.getpixel((100, 74))[3] == 0
    assert thumb.getpixel((100, 75))[3] == 255
    assert thumb.getpixel((100, 124))[3] == 255
    assert thumb.getpixel((100, 125))[3] == 0
    assert thumb.getpixel((0, 100))[3] == 255


def test_thumbnail_scales_up_small_images():
    thumb = make_thumbnail(Image.new("RGB", (20, 40), BLUE), 200)
    assert thumb.getpixel((100, 0))[3] == 255
    assert thumb.getpixel((10, 100))[3] == 0


# ==========================
# CODEC AND EXIF
# ==========================

def test_read_orientation(image_bytes):
    assert read_orientation(image_bytes(40, 20, orientation=6)) == 6
    assert read_orientation(image_bytes(40, 20, fmt="PNG")) is None


def test_read_orientation_never_raises():
    assert read_orientation(b"not an image") is None


def test_decode_failure():
    with pytest.raises(DecodeFailure):
        decode_image(b"\x00\x01garbage")


def test_decompression_bomb_is_a_decode_failure(monkeypatch, image_bytes):
    data = image_bytes(200, 200, fmt="PNG")
    # Above twice the limit Pillow refuses to open the image at all
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    with pytest.raises(DecodeFailure):
        decode_image(data)


def test_decode_keeps_raw_orientation(image_bytes):
    img = decode_image(image_bytes(40, 20, orientation=6))
    assert img.size == (40, 20)


def test_encode_rgba_as_jpeg():
    data = encode_image(Image.new("RGBA", (10, 10), (0, 0, 0, 0)), "image/jpeg")
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"


def test_encode_unknown_type_falls_back_to_png():
    data = encode_image(Image.new("RGB", (10, 10)), "image")
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "PNG"


# ==========================
# PROBLEM BASE
# ==========================

def test_problem_base_is_shifted_by_trim():
    img = Image.new("RGB", (100, 50))
    for x in range(100):
        img.putpixel((x, 0), (x, 0, 0))
    plan = plan_problem_canvas(100, 50, TrimSpec(left=0.25, right=0.25))
    out = compose_problem_base(img, plan)
    assert out.size == (50, 50)
    assert out.getpixel((0, 0)) == (25, 0, 0)
