import logging
import os
import tempfile
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from config/.env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Settings:
    GEMINI_API_KEY: str | None = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
    GEMINI_BASE_URL: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )

    IMAGE_MODEL: str = os.getenv("IMAGE_MODEL", "imagen-4.0-generate-001")
    EDIT_MODEL: str = os.getenv("EDIT_MODEL", "gemini-2.5-flash-image-preview")
    VIDEO_MODEL: str = os.getenv("VIDEO_MODEL", "veo-2.0-generate-001")

    VIDEO_POLL_INTERVAL: float = _env_float("VIDEO_POLL_INTERVAL", 10.0)  # seconds
    VIDEO_MAX_POLLS: int = _env_int("VIDEO_MAX_POLLS", 90)  # 0 = no cap
    REQUEST_TIMEOUT: float = _env_float("REQUEST_TIMEOUT", 120.0)

    VIDEO_JOB_TTL: float = _env_float("VIDEO_JOB_TTL", 3600.0)  # finished jobs, 0 = keep
    VIDEO_JOB_SWEEP_INTERVAL: float = _env_float("VIDEO_JOB_SWEEP_INTERVAL", 60.0)

    MEDIA_DIR: str = os.getenv("MEDIA_DIR", tempfile.gettempdir())

    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Set up the root logger once per process."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
