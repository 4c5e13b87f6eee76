# holdmap/errors.py
"""
Exception taxonomy for the image pipelines.

Geometry and rendering errors abort the current invocation before anything is
uploaded. OrientationUnsupported is raised by the EXIF mapping but is always
caught by the orientation resolver, which degrades to angle 0.
"""


class HoldmapError(Exception):
    """Base class for every error raised by the pipelines."""


class InvalidTrimGeometry(HoldmapError, ValueError):
    """Trim fractions leave no pixels to draw (e.g. left + right >= 1)."""


class InvalidImageDimensions(HoldmapError, ValueError):
    """An image with a zero or negative edge."""


class InvalidPlacement(HoldmapError, ValueError):
    """Unrecognised label placement on a primitive that needs one."""


class UnknownPrimitiveSizeType(HoldmapError, ValueError):
    """Unrecognised primitive size class."""


class SourceNotFound(HoldmapError, FileNotFoundError):
    """Requested blob does not exist in the blob store."""


class DecodeFailure(HoldmapError):
    """Bytes could not be decoded as an image."""


class OrientationUnsupported(HoldmapError):
    """EXIF orientation code that has no rotation mapping."""
