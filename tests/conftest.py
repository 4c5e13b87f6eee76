import io

import pytest
from PIL import Image

from holdmap.record_store import InMemoryRecordStore
from holdmap.storage import LocalBlobStore


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(
        root=str(tmp_path / "blobs"),
        public_base_url="http://testserver/blobs",
        secret="test-secret",
    )


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def work_dir(tmp_path):
    d = tmp_path / "work"
    d.mkdir()
    return str(d)


@pytest.fixture
def image_bytes():
    """Factory: encoded solid or two-tone image, optionally with an EXIF orientation."""

    def _make(width, height, fmt="JPEG", orientation=None, left=(255, 0, 0), right=None):
        img = Image.new("RGB", (width, height), left)
        if right is not None:
            img.paste(Image.new("RGB", (width - width // 2, height), right), (width // 2, 0))
        buf = io.BytesIO()
        kwargs = {}
        if orientation is not None:
            exif = Image.Exif()
            exif[0x0112] = orientation
            kwargs["exif"] = exif.tobytes()
        img.save(buf, format=fmt, **kwargs)
        return buf.getvalue()

    return _make
