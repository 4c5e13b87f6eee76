# holdmap/config.py
"""
Environment-driven settings for the holdmap image service.

Every value can be overridden through an environment variable of the same name.
"""

import os


# ==========================
# IMAGE SIZES
# ==========================

# Long edge of the trimmed base picture
TRIMMED_HEIGHT = int(os.getenv("TRIMMED_HEIGHT", "1200"))

# Square thumbnail edge
THUMB_SIZE = int(os.getenv("THUMB_SIZE", "200"))

JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "75"))


# ==========================
# DERIVED PATH NAMING
# ==========================

TRIMMED_PREFIX = "trimmed_"
THUMB_PREFIX = "thumb_"
COMPLETED_PREFIX = "completed_"

PROBLEM_IMAGE_DIR = os.getenv("PROBLEM_IMAGE_DIR", "problemImages")

BASE_PICTURES_COLLECTION = "basePictures"
PROBLEMS_COLLECTION = "problems"
PRIMITIVES_SUBCOLLECTION = "primitives"


# ==========================
# BLOB STORE
# ==========================

BLOB_ROOT = os.getenv("BLOB_ROOT", "data/blobs")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000/blobs")
URL_SIGNING_SECRET = os.getenv("URL_SIGNING_SECRET", "change-me")

# Signed URLs are issued with an effectively unbounded expiry (2500-03-01 UTC)
URL_EXPIRES = int(os.getenv("URL_EXPIRES", "16730323200"))

# Scratch space for per-invocation temporary files
WORK_DIR = os.getenv("WORK_DIR") or None


# ==========================
# RECORD STORE
# ==========================

RECORD_STORE = os.getenv("RECORD_STORE", "memory")

DB_HOST = os.getenv("DB_HOST", "postgres")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "holdmap")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")


# ==========================
# PRIMITIVE RENDERING
# ==========================

PRIMITIVE_FONT_PATH = os.getenv("PRIMITIVE_FONT_PATH", "")

# Tried in order when PRIMITIVE_FONT_PATH is unset; labels contain kana and kanji
FONT_CANDIDATES = [
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/fonts-japanese-gothic.ttf",
    "/usr/share/fonts/truetype/takao-gothic/TakaoPGothic.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
]
