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

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
# CORS: comma-separated origins; empty means allow all
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

# Upload limit for POST /convert
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "300"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

# Formats: what the endpoint can produce, what the client may submit
OUTPUT_FORMATS = ["avif", "webp", "jpeg"]
ACCEPTED_INPUT_TYPES = {"image/jpeg", "image/png"}

# Conversion options (env overrides)
DEFAULT_FORMAT = os.getenv("DEFAULT_FORMAT", "webp").lower()
DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", "55"))
MIN_QUALITY = 1
MAX_QUALITY = 95

# Client side
CONVERTER_URL = os.getenv("CONVERTER_URL", f"http://localhost:{PORT}").rstrip("/")
CLIENT_TIMEOUT_SEC = int(os.getenv("CLIENT_TIMEOUT_SEC", "300"))
UPLOAD_CHUNK_SIZE = int(os.getenv("UPLOAD_CHUNK_SIZE", str(64 * 1024)))
# 1 keeps batch conversion strictly sequential
MAX_CONCURRENCY = max(1, int(os.getenv("MAX_CONCURRENCY", "1")))
# Error text shown to the user is cut to this length
MAX_ERROR_TEXT = 200

OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "outputs")))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("converter")
