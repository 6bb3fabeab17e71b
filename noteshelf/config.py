from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_timeout_s: float
    api_debug_log: bool
    cache_stale_s: float
    export_dir: Path
    export_theme: Literal["light", "dark"]
    export_include_timestamp: bool


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


def load_settings() -> Settings:
    api_base_url = os.environ.get("NOTES_API_BASE_URL", "http://localhost:8000")
    api_timeout_s = float(os.environ.get("NOTES_API_TIMEOUT_S", "10"))
    api_debug_log = _env_flag("NOTES_API_DEBUG_LOG", "false")
    cache_stale_s = float(os.environ.get("NOTES_CACHE_STALE_S", "0"))
    export_dir = Path(os.environ.get("NOTES_EXPORT_DIR", "./exports")).resolve()
    export_theme = os.environ.get("NOTES_EXPORT_THEME", "light").strip().lower()
    if export_theme not in ("light", "dark"):
        raise ValueError(f"NOTES_EXPORT_THEME must be 'light' or 'dark', got {export_theme!r}")
    export_include_timestamp = _env_flag("NOTES_EXPORT_INCLUDE_TIMESTAMP", "true")
    return Settings(
        api_base_url=api_base_url,
        api_timeout_s=api_timeout_s,
        api_debug_log=api_debug_log,
        cache_stale_s=cache_stale_s,
        export_dir=export_dir,
        export_theme=export_theme,  # type: ignore[arg-type]
        export_include_timestamp=export_include_timestamp,
    )
