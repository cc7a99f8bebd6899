import os
import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel

DEFAULT_BASE_URL = "https://o.nfarmer.uk"
# Outside the app folder to avoid Azure Functions file-watcher restarts.
_DEFAULT_FONT_CACHE_DIR = Path(tempfile.gettempdir()) / "overlay-font-cache"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    port: int = 3000
    font_cache_dir: Path = _DEFAULT_FONT_CACHE_DIR
    font_cache_max_files: int = 64
    custom_font_family: str = "CustomR2Font"
    upstream_timeout_seconds: float = 15.0
    webp_quality: int = 100
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings(
        base_url=os.getenv("BASE_URL") or DEFAULT_BASE_URL,
        port=_env_int("PORT", 3000),
        font_cache_dir=Path(os.getenv("FONT_CACHE_DIR") or _DEFAULT_FONT_CACHE_DIR),
        font_cache_max_files=_env_int("FONT_CACHE_MAX_FILES", 64),
        custom_font_family=os.getenv("CUSTOM_FONT_FAMILY") or "CustomR2Font",
        upstream_timeout_seconds=_env_float("UPSTREAM_TIMEOUT_SECONDS", 15.0),
        webp_quality=min(max(_env_int("WEBP_QUALITY", 100), 1), 100),
        log_level=(os.getenv("OVERLAY_LOG_LEVEL") or "INFO").upper(),
    )
