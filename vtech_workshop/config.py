from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME, DEFAULT_PARTS_COST_RATIO

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_PATH = Path(os.environ.get("VTECH_DATA_DIR", BASE_DIR / DATA_DIR))
DB_PATH = Path(os.environ.get("VTECH_DB_PATH", DATA_PATH / DB_FILE_NAME))


_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_ratio(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime knobs. Everything has a sane default so tests and the CLI can
    run with no environment at all.
    """
    db_path: Path = DB_PATH
    parts_cost_ratio: float = DEFAULT_PARTS_COST_RATIO
    allow_parts_on_closed_jobs: bool = False
    session_minutes: int = 480
    service_key: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None


def load_settings() -> Settings:
    """Build Settings from VTECH_* environment variables."""
    try:
        session_minutes = int(os.environ.get("VTECH_SESSION_MINUTES", "480"))
    except ValueError:
        session_minutes = 480
    return Settings(
        db_path=Path(os.environ.get("VTECH_DB_PATH", DB_PATH)),
        parts_cost_ratio=_env_ratio("VTECH_PARTS_COST_RATIO", DEFAULT_PARTS_COST_RATIO),
        allow_parts_on_closed_jobs=_env_bool("VTECH_ALLOW_PARTS_ON_CLOSED_JOBS", False),
        session_minutes=max(1, session_minutes),
        service_key=os.environ.get("VTECH_SERVICE_KEY") or None,
        log_level=os.environ.get("VTECH_LOG_LEVEL", "INFO").upper(),
        log_file=os.environ.get("VTECH_LOG_FILE") or None,
    )
