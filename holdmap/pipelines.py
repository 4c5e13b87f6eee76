# holdmap/pipelines.py
"""
Base-picture and problem pipelines.

Each invocation handles one record event in isolation:
download -> decode -> transform -> encode -> upload -> record update -> cleanup.
Collaborators are injected, nothing here holds global state. Temporary files
live in a per-invocation directory removed on success and failure alike.
"""

import posixpath
import tempfile
from typing import Callable, Dict, List, Optional, Tuple

from .config import (
    BASE_PICTURES_COLLECTION,
    PRIMITIVES_SUBCOLLECTION,
    PROBLEMS_COLLECTION,
    THUMB_SIZE,
    TRIMMED_HEIGHT,
    WORK_DIR,
)
from .errors import SourceNotFound
from .geometry import plan_composite, plan_problem_canvas, resolve_effective_angle
from .logger import console, log_step
from .metrics import ARTIFACTS_UPLOADED
from .models import BasePictureRecord, PrimitiveRecord, ProblemRecord, RecordEvent
from .primitives import Primitive, PrimitiveRenderer
from .processing import (
    compose_problem_base,
    composite,
    decode_image,
    encode_image,
    make_thumbnail,
    read_orientation,
)
from .record_store import RecordStore
from .storage import BlobStore, DeleteOutcome, DownloadFile, UploadFile, delete_blob
from .utils import (
    base_thumb_path,
    completed_problem_path,
    content_type_for,
    problem_thumb_path,
    thumb_path_from_trimmed,
    trimmed_path,
)


def summarize_deletions(outcomes: List[Tuple[str, DeleteOutcome]]) -> str:
    """Human-readable status for a batch of best-effort deletes."""
    deleted = [label for label, outcome in outcomes if outcome is DeleteOutcome.DELETED]
    failed = [label for label, outcome in outcomes if outcome is DeleteOutcome.FAILED]

    parts = []
    if deleted:
        parts.append("Deleted " + ", ".join(deleted))
    else:
        parts.append("No images were deleted")
    if failed:
        parts.append("could not delete " + ", ".join(failed))
    return "; ".join(parts)


def _upload(store: BlobStore, storage_path: str, data: bytes, content_type: str, work_dir: str) -> str:
    storage_dir, name = posixpath.split(storage_path)
    with UploadFile(store, name, storage_dir, work_dir) as up:
        up.write(data)
        url = up.upload(content_type)
    ARTIFACTS_UPLOADED.labels(content_type=content_type).inc()
    return url


class BasePicturePipeline:
    """Trimmed picture + PNG thumbnail for a basePictures record."""

    collection = BASE_PICTURES_COLLECTION

    def __init__(
        self,
        blob_store: BlobStore,
        record_store: RecordStore,
        orientation_reader: Callable[[bytes], Optional[int]] = read_orientation,
        trimmed_height: int = TRIMMED_HEIGHT,
        thumb_size: int = THUMB_SIZE,
        work_dir: Optional[str] = WORK_DIR,
    ):
        self.blob_store = blob_store
        self.record_store = record_store
        self.orientation_reader = orientation_reader
        self.trimmed_height = trimmed_height
        self.thumb_size = thumb_size
        self.work_dir = work_dir

    def handle(self, doc_id: str, event: RecordEvent) -> str:
        kind = event.kind
        if kind == "create":
            log_step(doc_id, "base picture added")
            return self.generate(doc_id, BasePictureRecord.model_validate(event.after))
        if kind == "update":
            # Pictures are fixed once a record exists
            return "Record update ignored"
        log_step(doc_id, "base picture deleted")
        return self.delete(doc_id, BasePictureRecord.model_validate(event.before))

    def generate(self, doc_id: str, record: BasePictureRecord) -> str:
        original_path = record.originalPath
        if not original_path:
            console.log(f"[yellow]{doc_id}: no originalPath, nothing to process[/yellow]")
            return "No original picture to process"

        content_type = content_type_for(original_path)
        trimmed_storage_path = trimmed_path(original_path)
        thumb_storage_path = base_thumb_path(original_path)

        with tempfile.TemporaryDirectory(prefix="holdmap-", dir=self.work_dir) as work_dir:
            with DownloadFile(self.blob_store, original_path, work_dir) as original:
                data = original.download()

            orientation = self.orientation_reader(data)
            angle = resolve_effective_angle(orientation, record.rotation)
            log_step(doc_id, f"EXIF orientation={orientation} rotation={record.rotation} -> angle {angle}")

            img = decode_image(data)
            plan = plan_composite(angle, img.width, img.height, record.trim, self.trimmed_height)
            trimmed_bytes = encode_image(composite(img, plan), content_type)
            del img, data

            # Thumbnail is made from the encoded trimmed picture
            thumb_bytes = encode_image(make_thumbnail(decode_image(trimmed_bytes), self.thumb_size), "image/png")

            trimmed_url = _upload(self.blob_store, trimmed_storage_path, trimmed_bytes, content_type, work_dir)
            log_step(doc_id, f"trimmed picture {trimmed_storage_path} ({plan.dw}x{plan.dh})")
            thumb_url = _upload(self.blob_store, thumb_storage_path, thumb_bytes, "image/png", work_dir)
            log_step(doc_id, f"thumbnail {thumb_storage_path}")

        self.record_store.update(
            self.collection,
            doc_id,
            {
                "originalPath": "",
                "picturePath": trimmed_storage_path,
                "pictureURL": trimmed_url,
                "thumbnailURL": thumb_url,
            },
        )

        original.delete_storage_file()
        return f"Generated {trimmed_storage_path} and {thumb_storage_path}"

    def delete(self, doc_id: str, record: BasePictureRecord) -> str:
        picture_path = record.picturePath
        if not picture_path:
            return "No trimmed picture recorded, nothing deleted"

        thumb_storage_path = thumb_path_from_trimmed(picture_path)
        if thumb_storage_path is None:
            console.log(f"[yellow]{doc_id}: {picture_path} has no trimmed prefix[/yellow]")
            return "File name has no trimmed prefix, nothing deleted"

        outcomes = [
            ("trimmed image", delete_blob(self.blob_store, picture_path)),
            ("thumbnail", delete_blob(self.blob_store, thumb_storage_path)),
        ]
        return summarize_deletions(outcomes)


class ProblemPipeline:
    """Completed problem image + JPEG thumbnail for a problems record."""

    collection = PROBLEMS_COLLECTION

    def __init__(
        self,
        blob_store: BlobStore,
        record_store: RecordStore,
        renderer: Optional[PrimitiveRenderer] = None,
        thumb_size: int = THUMB_SIZE,
        work_dir: Optional[str] = WORK_DIR,
    ):
        self.blob_store = blob_store
        self.record_store = record_store
        self.renderer = renderer or PrimitiveRenderer()
        self.thumb_size = thumb_size
        self.work_dir = work_dir

    def handle(self, doc_id: str, event: RecordEvent) -> str:
        if event.after is not None:
            record = ProblemRecord.model_validate(event.after)
            if not record.imageRequired:
                return "Image not requested"
            log_step(doc_id, "problem image requested")
            return self.generate(doc_id, record)
        log_step(doc_id, "problem deleted")
        return self.delete(doc_id)

    def load_primitives(self, doc_id: str) -> List[Primitive]:
        children = self.record_store.list_children(self.collection, doc_id, PRIMITIVES_SUBCOLLECTION)
        return [Primitive.from_record(PrimitiveRecord.model_validate(child)) for child in children]

    def generate(self, doc_id: str, record: ProblemRecord) -> str:
        if not record.basePicturePath:
            raise SourceNotFound(f"problem {doc_id} has no basePicturePath")

        completed_path = completed_problem_path(doc_id)
        thumb_path = problem_thumb_path(doc_id)

        with tempfile.TemporaryDirectory(prefix="holdmap-", dir=self.work_dir) as work_dir:
            with DownloadFile(self.blob_store, record.basePicturePath, work_dir) as base:
                data = base.download()

            img = decode_image(data)
            plan = plan_problem_canvas(img.width, img.height, record.trim)
            canvas = compose_problem_base(img, plan)
            del img, data

            primitives = self.load_primitives(doc_id)
            self.renderer.render(canvas, primitives, (plan.offset_x, plan.offset_y))
            log_step(doc_id, f"rendered {len(primitives)} primitives on {plan.width}x{plan.height}")

            completed_bytes = encode_image(canvas, "image/jpeg")
            thumb_bytes = encode_image(make_thumbnail(decode_image(completed_bytes), self.thumb_size), "image/jpeg")

            completed_url = _upload(self.blob_store, completed_path, completed_bytes, "image/jpeg", work_dir)
            thumb_url = _upload(self.blob_store, thumb_path, thumb_bytes, "image/jpeg", work_dir)

        self.record_store.update(
            self.collection,
            doc_id,
            {
                "imageRequired": False,
                "completedImageURL": completed_url,
                "completedImageThumbURL": thumb_url,
            },
        )
        return f"Generated {completed_path} and {thumb_path}"

    def delete(self, doc_id: str) -> str:
        outcomes = [
            ("completed image", delete_blob(self.blob_store, completed_problem_path(doc_id))),
            ("thumbnail", delete_blob(self.blob_store, problem_thumb_path(doc_id))),
        ]
        return summarize_deletions(outcomes)


def build_pipelines(blob_store: BlobStore, record_store: RecordStore) -> Dict[str, object]:
    """Pipelines keyed by the collection whose events they handle."""
    return {
        BASE_PICTURES_COLLECTION: BasePicturePipeline(blob_store, record_store),
        PROBLEMS_COLLECTION: ProblemPipeline(blob_store, record_store),
    }
