"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")

# Accepted upload types (extension -> MIME) for the queue
IMAGE_EXTENSIONS = {
    ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png",
    ".gif": "image/gif", ".webp": "image/webp", ".bmp": "image/bmp",
    ".tiff": "image/tiff", ".tif": "image/tiff", ".avif": "image/avif",
}

# Conversion defaults (env overrides)
DEFAULT_FORMAT = os.getenv("DEFAULT_FORMAT", "png").strip().lower()
DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", "90"))
# Pillow WebP `method`: 0 (fast) .. 6 (slowest, smallest)
WEBP_EFFORT = int(os.getenv("WEBP_EFFORT", "4"))
DEFAULT_BACKGROUND = os.getenv("DEFAULT_BACKGROUND", "#ffffff")

# Limits (env)
MAX_IMAGES_PER_UPLOAD = int(os.getenv("MAX_IMAGES_PER_UPLOAD", "50"))
MAX_IMAGE_SIZE_MB = int(os.getenv("MAX_IMAGE_SIZE_MB", "5"))
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024

# Downloads
ARCHIVE_PREFIX = os.getenv("ARCHIVE_PREFIX", "pixelflex-converted")
DOWNLOAD_PREFIX = os.getenv("DOWNLOAD_PREFIX", "converted-")

# Gemini collaborator. API_KEY is accepted for compatibility with older setups.
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", os.getenv("API_KEY", "")).strip()
GEMINI_API_URL = os.getenv("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
GEMINI_ENHANCE_MODEL = os.getenv("GEMINI_ENHANCE_MODEL", "gemini-2.5-flash-image")
GEMINI_DESCRIBE_MODEL = os.getenv("GEMINI_DESCRIBE_MODEL", "gemini-3-flash-preview")
GEMINI_TIMEOUT = int(os.getenv("GEMINI_TIMEOUT", "60"))
DESCRIPTION_FALLBACK = "Could not analyze image."

# Server (for uvicorn). Local-first: bind to loopback unless told otherwise.
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, e.g. "http://localhost:5173,http://127.0.0.1:5173"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("pixelflex")
