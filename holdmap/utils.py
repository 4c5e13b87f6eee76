# holdmap/utils.py
"""
Derived artifact naming.

Every derived path is a pure function of the source path or record id plus a
fixed prefix. Deletion runs the rule backwards to find sibling artifacts.
"""

import posixpath
from typing import Optional

from .config import (
    COMPLETED_PREFIX,
    PROBLEM_IMAGE_DIR,
    THUMB_PREFIX,
    TRIMMED_PREFIX,
)

_CONTENT_TYPES = {
    ".JPG": "image/jpeg",
    ".JPEG": "image/jpeg",
    ".PNG": "image/png",
    ".GIF": "image/gif",
}

_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
}


def content_type_for(name: str) -> str:
    """Content type from a file extension; unknown extensions get plain "image"."""
    ext = posixpath.splitext(name)[1].upper()
    return _CONTENT_TYPES.get(ext, "image")


def image_format_for(content_type: str) -> str:
    """Pillow format name for a content type, PNG when unknown."""
    return _FORMATS.get(content_type, "PNG")


def replace_ext(name: str, ext: str) -> str:
    """Swap the extension of name for ext (e.g. ".png")."""
    return posixpath.splitext(name)[0] + ext


def trimmed_path(original_path: str) -> str:
    storage_dir, name = posixpath.split(original_path)
    return posixpath.join(storage_dir, TRIMMED_PREFIX + name)


def base_thumb_path(original_path: str) -> str:
    storage_dir, name = posixpath.split(original_path)
    return posixpath.join(storage_dir, THUMB_PREFIX + replace_ext(name, ".png"))


def thumb_path_from_trimmed(picture_path: str) -> Optional[str]:
    """Thumbnail sibling of a trimmed picture, or None if the name lacks the prefix."""
    storage_dir, name = posixpath.split(picture_path)
    if not name.startswith(TRIMMED_PREFIX):
        return None
    return base_thumb_path(posixpath.join(storage_dir, name[len(TRIMMED_PREFIX):]))


def completed_problem_path(doc_id: str) -> str:
    return posixpath.join(PROBLEM_IMAGE_DIR, f"{COMPLETED_PREFIX}{doc_id}.jpg")


def problem_thumb_path(doc_id: str) -> str:
    return posixpath.join(PROBLEM_IMAGE_DIR, f"{THUMB_PREFIX}{doc_id}.jpg")
