# holdmap/storage.py
"""
Blob storage for source pictures and derived artifacts.

Responsibilities:
- BlobStore protocol consumed by the pipelines
- LocalBlobStore: files under BLOB_ROOT with HMAC-signed public URLs
- DownloadFile / UploadFile: bytes staged through a scoped local work dir
- delete_blob: best-effort delete reporting a DeleteOutcome
"""

import hashlib
import hmac
import json
import os
import posixpath
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

from .config import BLOB_ROOT, PUBLIC_BASE_URL, URL_EXPIRES, URL_SIGNING_SECRET
from .errors import SourceNotFound
from .logger import console
from .metrics import CLEANUP_FAILURES
from .utils import content_type_for


class BlobStore(Protocol):
    def download(self, path: str) -> bytes: ...

    def upload(self, data: bytes, path: str, content_type: str) -> str: ...

    def delete(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    FAILED = "failed"


# ==========================
# URL SIGNING
# ==========================

def _signature(secret: str, path: str, expires: int) -> str:
    msg = f"{path}:{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def sign_url(base_url: str, secret: str, path: str, expires: int = URL_EXPIRES) -> str:
    sig = _signature(secret, path, expires)
    return f"{base_url.rstrip('/')}/{quote(path)}?expires={expires}&signature={sig}"


def verify_signature(
    secret: str,
    path: str,
    expires: int,
    signature: str,
    now: Optional[float] = None,
) -> bool:
    if expires < (time.time() if now is None else now):
        return False
    return hmac.compare_digest(_signature(secret, path, expires), signature)


# ==========================
# LOCAL FILESYSTEM STORE
# ==========================

class LocalBlobStore:
    """
    Blob store backed by a directory.

    The content type given at upload time is kept in a "<name>.meta.json"
    sidecar next to the blob.
    """

    def __init__(
        self,
        root: str = BLOB_ROOT,
        public_base_url: str = PUBLIC_BASE_URL,
        secret: str = URL_SIGNING_SECRET,
        expires: int = URL_EXPIRES,
    ):
        self.root = Path(root)
        self.public_base_url = public_base_url
        self.secret = secret
        self.expires = expires

    def _local(self, path: str) -> Path:
        norm = posixpath.normpath(path.lstrip("/"))
        if norm.startswith("..") or norm in (".", ""):
            raise ValueError(f"invalid blob path {path!r}")
        return self.root / norm

    def _meta(self, path: str) -> Path:
        local = self._local(path)
        return local.with_name(local.name + ".meta.json")

    def exists(self, path: str) -> bool:
        return self._local(path).is_file()

    def download(self, path: str) -> bytes:
        local = self._local(path)
        if not local.is_file():
            raise SourceNotFound(f"blob not found: {path}")
        return local.read_bytes()

    def upload(self, data: bytes, path: str, content_type: str) -> str:
        local = self._local(path)
        local.parent.mkdir(parents=True, exist_ok=True)
        local.write_bytes(data)
        self._meta(path).write_text(json.dumps({"contentType": content_type}), encoding="utf-8")
        return self.signed_url(path)

    def delete(self, path: str) -> None:
        self._local(path).unlink(missing_ok=True)
        self._meta(path).unlink(missing_ok=True)

    def content_type(self, path: str) -> str:
        meta = self._meta(path)
        if meta.is_file():
            return json.loads(meta.read_text(encoding="utf-8")).get("contentType", "image")
        return content_type_for(path)

    def signed_url(self, path: str) -> str:
        return sign_url(self.public_base_url, self.secret, path, self.expires)

    def verify(self, path: str, expires: int, signature: str) -> bool:
        return verify_signature(self.secret, path, expires, signature)


def delete_blob(store: BlobStore, path: str) -> DeleteOutcome:
    """Delete one blob; failures are logged and reported, never raised."""
    try:
        store.delete(path)
    except Exception as exc:
        console.log(f"[yellow]Failed to delete blob {path}: {exc}[/yellow]")
        CLEANUP_FAILURES.inc()
        return DeleteOutcome.FAILED
    return DeleteOutcome.DELETED


# ==========================
# SCOPED LOCAL FILES
# ==========================

class DownloadFile:
    """A blob copied into work_dir; the local copy goes away on exit."""

    def __init__(self, store: BlobStore, storage_path: str, work_dir: str):
        self.store = store
        self.storage_path = storage_path
        self.storage_dir, self.file_name = posixpath.split(storage_path)
        self.local_path = os.path.join(work_dir, self.file_name)

    def download(self) -> bytes:
        data = self.store.download(self.storage_path)
        os.makedirs(os.path.dirname(self.local_path), exist_ok=True)
        with open(self.local_path, "wb") as fh:
            fh.write(data)
        return data

    def delete_local_file(self) -> None:
        try:
            os.unlink(self.local_path)
        except FileNotFoundError:
            pass

    def delete_storage_file(self) -> DeleteOutcome:
        return delete_blob(self.store, self.storage_path)

    def __enter__(self) -> "DownloadFile":
        return self

    def __exit__(self, *exc) -> None:
        self.delete_local_file()


class UploadFile:
    """Bytes written locally under file_name, then uploaded to storage_dir/file_name."""

    def __init__(self, store: BlobStore, file_name: str, storage_dir: str, work_dir: str):
        self.store = store
        self.file_name = file_name
        self.local_path = os.path.join(work_dir, file_name)
        self.storage_dir = storage_dir
        self.storage_path = posixpath.join(storage_dir, file_name)
        self.url = ""

    @property
    def content_type(self) -> str:
        return content_type_for(self.file_name)

    def write(self, data: bytes) -> None:
        os.makedirs(os.path.dirname(self.local_path), exist_ok=True)
        with open(self.local_path, "wb") as fh:
            fh.write(data)

    def upload(self, content_type: Optional[str] = None) -> str:
        with open(self.local_path, "rb") as fh:
            data = fh.read()
        self.url = self.store.upload(data, self.storage_path, content_type or self.content_type)
        return self.url

    def delete_local_file(self) -> None:
        try:
            os.unlink(self.local_path)
        except FileNotFoundError:
            pass

    def __enter__(self) -> "UploadFile":
        return self

    def __exit__(self, *exc) -> None:
        self.delete_local_file()
