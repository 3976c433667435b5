"""Engine configuration from environment variables.

Environment variables:
    FIELD_ENGINE_FORECAST_URL: Open-Meteo forecast endpoint.
    FIELD_ENGINE_FORECAST_TIMEOUT: Request timeout in seconds (default 5).
    FIELD_ENGINE_CACHE_URL: SQLAlchemy URL of the forecast cache store.
        Default: SQLite file under ``~/.field-engine/``.
    FIELD_ENGINE_INTERVENTIONS_PATH: Intervention table JSON.
        Default: the table bundled with the engine.
    FIELD_ENGINE_SCORE_STRATEGY: ``'mean'`` (default) or ``'vegetation_weighted'``.
    FIELD_ENGINE_PHOTO_SIZE: Downsample edge length in pixels (default 200).
    FIELD_ENGINE_SHARE_BASE_URL: Base URL for share links.
    FIELD_ENGINE_LOG_LEVEL: Logging level name (default ``INFO``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from forecast_provider import DEFAULT_TIMEOUT_S, OPEN_METEO_URL
from photo_loader import DEFAULT_TARGET_SIZE

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path.home() / ".field-engine" / "forecast-cache.db"
DEFAULT_SHARE_BASE_URL = "https://localhost/field-card"


@dataclass(frozen=True)
class EngineConfig:
    """Resolved engine settings."""

    forecast_url: str = OPEN_METEO_URL
    forecast_timeout: float = DEFAULT_TIMEOUT_S
    cache_url: str = f"sqlite:///{DEFAULT_CACHE_PATH}"
    interventions_path: str = ""
    score_strategy: str = "mean"
    photo_size: int = DEFAULT_TARGET_SIZE
    share_base_url: str = DEFAULT_SHARE_BASE_URL
    log_level: str = "INFO"


def _env_number(name: str, default: float, cast: type) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number; using %s", name, raw, default)
        return default


def get_engine_config() -> EngineConfig:
    """Read engine configuration from environment variables."""
    defaults = EngineConfig()
    return EngineConfig(
        forecast_url=os.environ.get("FIELD_ENGINE_FORECAST_URL") or defaults.forecast_url,
        forecast_timeout=_env_number(
            "FIELD_ENGINE_FORECAST_TIMEOUT", defaults.forecast_timeout, float,
        ),
        cache_url=os.environ.get("FIELD_ENGINE_CACHE_URL") or defaults.cache_url,
        interventions_path=(
            os.environ.get("FIELD_ENGINE_INTERVENTIONS_PATH")
            or defaults.interventions_path
        ),
        score_strategy=(
            os.environ.get("FIELD_ENGINE_SCORE_STRATEGY") or defaults.score_strategy
        ),
        photo_size=int(_env_number("FIELD_ENGINE_PHOTO_SIZE", defaults.photo_size, int)),
        share_base_url=(
            os.environ.get("FIELD_ENGINE_SHARE_BASE_URL") or defaults.share_base_url
        ),
        log_level=(os.environ.get("FIELD_ENGINE_LOG_LEVEL") or defaults.log_level).upper(),
    )
