import io

import pytest
from PIL import Image
from pydantic import ValidationError

from holdmap.errors import InvalidTrimGeometry, SourceNotFound, UnknownPrimitiveSizeType
from holdmap.models import BasePictureRecord, RecordEvent
from holdmap.pipelines import (
    BasePicturePipeline,
    ProblemPipeline,
    build_pipelines,
    summarize_deletions,
)
from holdmap.storage import DeleteOutcome

ORIGINAL = "basePictures/u1/wall.jpg"
TRIMMED = "basePictures/u1/trimmed_wall.jpg"
THUMB = "basePictures/u1/thumb_wall.png"


def _open(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def _record(data):
    return BasePictureRecord.model_validate(data)


@pytest.fixture
def base_pipeline(blob_store, record_store, work_dir):
    return BasePicturePipeline(blob_store, record_store, trimmed_height=120, thumb_size=50, work_dir=work_dir)


@pytest.fixture
def problem_pipeline(blob_store, record_store, work_dir):
    return ProblemPipeline(blob_store, record_store, thumb_size=50, work_dir=work_dir)


def _base_record(**overrides):
    data = {
        "originalPath": ORIGINAL,
        "rotation": 0,
        "trimLeft": 0.0,
        "trimRight": 0.0,
        "trimTop": 0.0,
        "trimBottom": 0.0,
    }
    data.update(overrides)
    return data


# ==========================
# BASE PICTURES
# ==========================

def test_base_picture_create(base_pipeline, blob_store, record_store, image_bytes):
    blob_store.upload(image_bytes(400, 200, orientation=6), ORIGINAL, "image/jpeg")
    data = _base_record()
    record_store.set("basePictures", "b1", data)

    message = base_pipeline.handle("b1", RecordEvent(before=None, after=data))

    assert "trimmed_wall.jpg" in message
    record = record_store.get("basePictures", "b1")
    assert record["originalPath"] == ""
    assert record["picturePath"] == TRIMMED
    assert record["pictureURL"].startswith("http://testserver/blobs/" + TRIMMED)
    assert record["thumbnailURL"].startswith("http://testserver/blobs/" + THUMB)

    trimmed = _open(blob_store.download(TRIMMED))
    assert trimmed.format == "JPEG"
    # EXIF 6 turns the 400x200 landscape into a portrait
    assert trimmed.size == (60, 120)

    thumb = _open(blob_store.download(THUMB))
    assert thumb.format == "PNG"
    assert thumb.size == (50, 50)
    assert thumb.mode == "RGBA"
    assert thumb.getpixel((0, 25))[3] == 0

    assert not blob_store.exists(ORIGINAL)


def test_user_rotation_is_added_to_exif(base_pipeline, blob_store, record_store, image_bytes):
    blob_store.upload(image_bytes(400, 200, orientation=6), ORIGINAL, "image/jpeg")
    data = _base_record(rotation=90)
    record_store.set("basePictures", "b1", data)

    base_pipeline.generate("b1", _record(data))

    assert _open(blob_store.download(TRIMMED)).size == (120, 60)


def test_injected_orientation_reader(blob_store, record_store, work_dir, image_bytes):
    pipeline = BasePicturePipeline(
        blob_store, record_store,
        orientation_reader=lambda data: 8,
        trimmed_height=100, thumb_size=50, work_dir=work_dir,
    )
    blob_store.upload(image_bytes(200, 100, fmt="PNG"), "walls/w.png", "image/png")
    data = _base_record(originalPath="walls/w.png")
    record_store.set("basePictures", "b2", data)

    pipeline.generate("b2", _record(data))

    trimmed = _open(blob_store.download("walls/trimmed_w.png"))
    assert trimmed.format == "PNG"
    assert trimmed.size == (50, 100)


def test_degenerate_trim_uploads_nothing(base_pipeline, blob_store, record_store, image_bytes):
    blob_store.upload(image_bytes(400, 200), ORIGINAL, "image/jpeg")
    data = _base_record(trimLeft=0.6, trimRight=0.6)
    record_store.set("basePictures", "b1", data)

    with pytest.raises(InvalidTrimGeometry):
        base_pipeline.handle("b1", RecordEvent(after=data))

    assert not blob_store.exists(TRIMMED)
    assert not blob_store.exists(THUMB)
    assert blob_store.exists(ORIGINAL)
    assert record_store.get("basePictures", "b1") == data


def test_negative_trim_uploads_nothing(base_pipeline, blob_store, record_store, image_bytes):
    blob_store.upload(image_bytes(400, 200), ORIGINAL, "image/jpeg")
    data = _base_record(trimLeft=-0.5)
    record_store.set("basePictures", "b1", data)

    with pytest.raises(ValidationError):
        base_pipeline.handle("b1", RecordEvent(after=data))

    assert not blob_store.exists(TRIMMED)
    assert not blob_store.exists(THUMB)
    assert blob_store.exists(ORIGINAL)


def test_missing_original(base_pipeline, record_store):
    data = _base_record()
    record_store.set("basePictures", "b1", data)
    with pytest.raises(SourceNotFound):
        base_pipeline.handle("b1", RecordEvent(after=data))


def test_empty_original_path_is_skipped(base_pipeline):
    message = base_pipeline.handle("b1", RecordEvent(after=_base_record(originalPath="")))
    assert message == "No original picture to process"


def test_base_picture_update_is_ignored(base_pipeline):
    event = RecordEvent(before=_base_record(), after=_base_record(rotation=90))
    assert base_pipeline.handle("b1", event) == "Record update ignored"


def test_base_picture_delete(base_pipeline, blob_store):
    blob_store.upload(b"t", TRIMMED, "image/jpeg")
    blob_store.upload(b"p", THUMB, "image/png")

    message = base_pipeline.handle("b1", RecordEvent(before={"picturePath": TRIMMED}))

    assert message == "Deleted trimmed image, thumbnail"
    assert not blob_store.exists(TRIMMED)
    assert not blob_store.exists(THUMB)


def test_base_picture_delete_requires_prefix(base_pipeline, blob_store):
    blob_store.upload(b"t", ORIGINAL, "image/jpeg")
    message = base_pipeline.handle("b1", RecordEvent(before={"picturePath": ORIGINAL}))
    assert "no trimmed prefix" in message
    assert blob_store.exists(ORIGINAL)


# ==========================
# PROBLEMS
# ==========================

def _problem(**overrides):
    data = {
        "basePicturePath": TRIMMED,
        "trimLeft": 0.25,
        "trimRight": 0.25,
        "trimTop": 0.0,
        "trimBottom": 0.5,
        "imageRequired": True,
    }
    data.update(overrides)
    return data


def _add_primitives(record_store, doc_id, *children):
    for i, child in enumerate(children):
        record_store.add_child("problems", doc_id, "primitives", f"prim{i}", child)


HOLD = {
    "type": "PrimitiveType.StartHold",
    "sizeType": "PrimitiveSizeType.S",
    "subItemPosition": "PrimitiveSubItemPosition.Right",
    "positionX": 150.0,
    "positionY": 50.0,
    "color": "0,255,0",
}


def test_problem_images_generated(problem_pipeline, blob_store, record_store, image_bytes):
    blob_store.upload(image_bytes(400, 200, left=(0, 0, 0)), TRIMMED, "image/jpeg")
    data = _problem()
    record_store.set("problems", "p1", data)
    _add_primitives(record_store, "p1", HOLD, dict(HOLD, type="PrimitiveType.Bote", positionX=250.0))

    problem_pipeline.handle("p1", RecordEvent(after=data))

    record = record_store.get("problems", "p1")
    assert record["imageRequired"] is False
    assert record["completedImageURL"].startswith("http://testserver/blobs/problemImages/completed_p1.jpg")
    assert record["completedImageThumbURL"].startswith("http://testserver/blobs/problemImages/thumb_p1.jpg")

    completed = _open(blob_store.download("problemImages/completed_p1.jpg"))
    assert completed.format == "JPEG"
    assert completed.size == (200, 100)

    # Hold at x=150 on the base picture sits at x=50 after the 100px left trim;
    # its circle passes through (50 + 30, 50)
    r, g, b = completed.getpixel((80, 50))
    assert g > r + 60 and g > b + 60

    thumb = _open(blob_store.download("problemImages/thumb_p1.jpg"))
    assert thumb.format == "JPEG"
    assert thumb.size == (50, 50)


def test_problem_not_requested(problem_pipeline, blob_store):
    message = problem_pipeline.handle("p1", RecordEvent(after=_problem(imageRequired=False)))
    assert message == "Image not requested"
    assert not blob_store.exists("problemImages/completed_p1.jpg")


def test_problem_bad_primitive_aborts_before_upload(problem_pipeline, blob_store, record_store, image_bytes):
    blob_store.upload(image_bytes(400, 200), TRIMMED, "image/jpeg")
    data = _problem()
    record_store.set("problems", "p1", data)
    _add_primitives(record_store, "p1", HOLD, dict(HOLD, sizeType="PrimitiveSizeType.Huge"))

    with pytest.raises(UnknownPrimitiveSizeType):
        problem_pipeline.handle("p1", RecordEvent(before=data, after=data))

    assert not blob_store.exists("problemImages/completed_p1.jpg")
    assert not blob_store.exists("problemImages/thumb_p1.jpg")
    assert record_store.get("problems", "p1")["imageRequired"] is True


def test_problem_without_base_picture(problem_pipeline):
    with pytest.raises(SourceNotFound):
        problem_pipeline.handle("p1", RecordEvent(after=_problem(basePicturePath="")))


def test_problem_delete(problem_pipeline, blob_store):
    blob_store.upload(b"c", "problemImages/completed_p1.jpg", "image/jpeg")
    blob_store.upload(b"t", "problemImages/thumb_p1.jpg", "image/jpeg")

    message = problem_pipeline.handle("p1", RecordEvent(before=_problem()))

    assert message == "Deleted completed image, thumbnail"
    assert not blob_store.exists("problemImages/completed_p1.jpg")


# ==========================
# HELPERS
# ==========================

def test_summarize_deletions():
    assert summarize_deletions([("a", DeleteOutcome.DELETED)]) == "Deleted a"
    assert summarize_deletions(
        [("a", DeleteOutcome.DELETED), ("b", DeleteOutcome.FAILED)]
    ) == "Deleted a; could not delete b"
    assert summarize_deletions(
        [("a", DeleteOutcome.FAILED), ("b", DeleteOutcome.FAILED)]
    ) == "No images were deleted; could not delete a, b"


def test_build_pipelines(blob_store, record_store):
    pipelines = build_pipelines(blob_store, record_store)
    assert isinstance(pipelines["basePictures"], BasePicturePipeline)
    assert isinstance(pipelines["problems"], ProblemPipeline)
