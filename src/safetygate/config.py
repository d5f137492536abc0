"""
Runtime configuration loaded from environment variables.

  SAFETYGATE_DB_PATH=data/safetygate.db   SQLite database file
  SAFETYGATE_SAMPLING_RATE=0.0           share of clean records sampled for review (0..1)
  SAFETYGATE_SEED_CATALOG=true           seed the built-in rule catalog on startup
  LOG_LEVEL=INFO
  CORS_ORIGINS=http://localhost:3000,...  comma-separated
  API_KEY=...                             bearer key for the gateway (optional in dev)

The evidence field-path allowlist is NOT configuration: it lives in
engine/evidence.py and changes only through code review.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data/safetygate.db")
DEFAULT_SAMPLING_RATE = 0.0

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://localhost:8080",
]


def _get_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("true", "1", "yes", "on")


def _get_sampling_rate() -> float:
    """Load the sampling rate, falling back to the default on bad input."""
    raw = os.environ.get("SAFETYGATE_SAMPLING_RATE", "").strip()
    if not raw:
        return DEFAULT_SAMPLING_RATE
    try:
        rate = float(raw)
    except ValueError:
        logger.warning(f"[Config] Invalid SAFETYGATE_SAMPLING_RATE={raw!r}, using default")
        return DEFAULT_SAMPLING_RATE
    if not 0.0 <= rate <= 1.0:
        logger.warning(f"[Config] SAFETYGATE_SAMPLING_RATE={rate} out of range, using default")
        return DEFAULT_SAMPLING_RATE
    return rate


def _get_cors_origins() -> list[str]:
    """Load CORS origins from environment or use safe defaults."""
    origins_env = os.environ.get("CORS_ORIGINS", "")
    if origins_env.strip():
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    return list(DEFAULT_CORS_ORIGINS)


@dataclass
class Settings:
    """Resolved settings for one process."""

    db_path: Path = DEFAULT_DB_PATH
    sampling_rate: float = DEFAULT_SAMPLING_RATE
    seed_catalog: bool = True
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=Path(os.environ.get("SAFETYGATE_DB_PATH", "").strip() or DEFAULT_DB_PATH),
            sampling_rate=_get_sampling_rate(),
            seed_catalog=_get_bool("SAFETYGATE_SEED_CATALOG", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            cors_origins=_get_cors_origins(),
        )
