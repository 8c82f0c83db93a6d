import os

MAX_MB = int(os.getenv("DFVD_MAX_MB", "50"))

DEFAULT_DB_PATH = "/tmp/dfvd.db"

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("DFVD_GEMINI_MODEL", "gemini-2.5-pro")
GEMINI_BASE_URL = os.getenv("DFVD_GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
CAPABILITY_TIMEOUT = float(os.getenv("DFVD_CAPABILITY_TIMEOUT", "120"))

# "gemini" or "fake"
GATEWAY = os.getenv("DFVD_GATEWAY", "gemini")

REPORT_PREFIX = os.getenv("DFVD_REPORT_PREFIX", "DFVD")
SAVE_ATTEMPTS = int(os.getenv("DFVD_SAVE_ATTEMPTS", "3"))

LOG_LEVEL = os.getenv("DFVD_LOG_LEVEL", "INFO")

ALLOWED_VIDEO_TYPES = ["video/mp4", "video/avi", "video/mov", "video/webm"]
ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]


def get_db_path() -> str:
    return os.getenv("DFVD_DB_PATH", DEFAULT_DB_PATH)


def get_gemini_api_key() -> str | None:
    return os.getenv("GEMINI_API_KEY", GEMINI_API_KEY)
