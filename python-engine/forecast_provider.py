"""3-day weather forecast with offline fallback.

Fetches daily precipitation and temperature from Open-Meteo and keeps
the last good result in a cache. Resolution runs three tiers in order:

1. **live**: a fresh network fetch, written through to the cache.
2. **cache**: the last live result, re-tagged ``source='cached'``.
3. **sample**: a fixed built-in forecast, also tagged ``'cached'``.

Only latitude and longitude are sent upstream. Resolution never
raises; network and payload failures are logged and absorbed.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, runtime_checkable

import requests
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from index_processor import round_half_away

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
DAILY_FIELDS = "precipitation_sum,temperature_2m_max,temperature_2m_min"
FORECAST_DAYS = 3
DEFAULT_TIMEOUT_S = 5.0
CACHE_KEY = "field_engine_forecast_cache"

SOURCE_LIVE = "live"
SOURCE_CACHED = "cached"

TIER_LIVE = "live"
TIER_CACHE = "cache"
TIER_SAMPLE = "sample"

SAMPLE_PRECIPITATION_MM = 12.5
SAMPLE_TEMP_MIN = 8
SAMPLE_TEMP_MAX = 18

# Cache read/write failures; the cache is then treated as empty.
CACHE_ERRORS = (SQLAlchemyError, OSError)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ForecastSummary:
    """Immutable 3-day forecast summary."""

    precipitation_mm: float
    temp_min: int
    temp_max: int
    source: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "precipitationMm": self.precipitation_mm,
            "tempMin": self.temp_min,
            "tempMax": self.temp_max,
            "source": self.source,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ForecastSummary:
        """Rebuild a summary from its camelCase form.

        Raises:
            KeyError: If a field is missing.
            TypeError: If a field has the wrong type.
        """
        precipitation = data["precipitationMm"]
        temp_min, temp_max = data["tempMin"], data["tempMax"]
        timestamp = data["timestamp"]
        numbers = (precipitation, temp_min, temp_max)
        if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in numbers):
            raise TypeError("forecast numbers must be numeric")
        if not isinstance(timestamp, str):
            raise TypeError("forecast timestamp must be text")
        return cls(
            precipitation_mm=float(precipitation),
            temp_min=int(temp_min),
            temp_max=int(temp_max),
            source=str(data.get("source", SOURCE_CACHED)),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class ForecastResult:
    """A forecast tagged with the tier that produced it.

    ``error`` holds the reason the live tier failed, if it did.
    """

    summary: ForecastSummary
    tier: str
    error: str | None = None


# ---------------------------------------------------------------------------
# Protocols (interfaces for dependency injection)
# ---------------------------------------------------------------------------


@runtime_checkable
class ForecastCache(Protocol):
    """Single-slot key/value store for the last live forecast."""

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored payload, or ``None`` if absent."""
        ...

    def put(self, key: str, payload: dict[str, Any]) -> None:
        """Overwrite the payload stored under *key*."""
        ...


@runtime_checkable
class WeatherClient(Protocol):
    """Fetches a raw daily forecast payload for a coordinate."""

    def fetch_daily(self, lat: float, lon: float) -> dict[str, Any]:
        """Return the decoded JSON body of the forecast response."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementations
# ---------------------------------------------------------------------------


class InMemoryForecastCache:
    """Process-local cache; contents are lost on exit."""

    def __init__(self) -> None:
        self._store: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        payload = self._store.get(key)
        return dict(payload) if payload is not None else None

    def put(self, key: str, payload: dict[str, Any]) -> None:
        self._store[key] = dict(payload)


class SqlForecastCache:
    """Durable cache in a one-table key/value store via SQLAlchemy.

    The table is created on first use. Works against SQLite for a
    single device and PostgreSQL for a shared deployment.

    Args:
        engine: SQLAlchemy engine for the cache database.
    """

    _CREATE_SQL = text("""
        CREATE TABLE IF NOT EXISTS forecast_cache (
            cache_key VARCHAR(128) PRIMARY KEY,
            payload TEXT NOT NULL,
            updated_at VARCHAR(40) NOT NULL
        )
    """)
    _SELECT_SQL = text(
        "SELECT payload FROM forecast_cache WHERE cache_key = :key"
    )
    _DELETE_SQL = text("DELETE FROM forecast_cache WHERE cache_key = :key")
    _INSERT_SQL = text("""
        INSERT INTO forecast_cache (cache_key, payload, updated_at)
        VALUES (:key, :payload, :updated_at)
    """)

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        with self._engine.connect() as conn:
            conn.execute(self._CREATE_SQL)
            conn.commit()

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the decoded payload, or ``None`` if absent or unreadable."""
        with self._engine.connect() as conn:
            row = conn.execute(self._SELECT_SQL, {"key": key}).fetchone()
        if row is None:
            return None
        try:
            payload = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Cached forecast under %s is not valid JSON", key)
            return None
        return payload if isinstance(payload, dict) else None

    def put(self, key: str, payload: dict[str, Any]) -> None:
        """Replace the payload under *key* in one transaction."""
        params = {
            "key": key,
            "payload": json.dumps(payload),
            "updated_at": _utc_now().isoformat(),
        }
        with self._engine.connect() as conn:
            conn.execute(self._DELETE_SQL, {"key": key})
            conn.execute(self._INSERT_SQL, params)
            conn.commit()


class OpenMeteoClient:
    """Reads daily forecasts from the Open-Meteo REST API."""

    def __init__(
        self,
        url: str = OPEN_METEO_URL,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._timeout = timeout

    def fetch_daily(self, lat: float, lon: float) -> dict[str, Any]:
        """GET the daily forecast for a coordinate.

        Raises:
            requests.RequestException: On connection errors, timeouts,
                or a non-2xx status.
            ValueError: If the body is not JSON.
        """
        response = requests.get(
            self._url,
            params=build_forecast_params(lat, lon),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.json()


# ---------------------------------------------------------------------------
# Pure functions (no I/O, always testable)
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_forecast_params(lat: float, lon: float) -> dict[str, Any]:
    """Query parameters for the forecast request.

    Coordinates are the only caller data that leave the process.
    """
    return {
        "latitude": lat,
        "longitude": lon,
        "daily": DAILY_FIELDS,
        "timezone": "auto",
    }


def summarize_daily(payload: dict[str, Any], timestamp: str) -> ForecastSummary:
    """Reduce an Open-Meteo daily payload to a 3-day summary.

    Sums the first three precipitation values (rounded to 0.1 mm) and
    takes the min/max of the first three daily temperature extremes
    (rounded to whole degrees).

    Args:
        payload: Decoded response body.
        timestamp: Capture time to stamp on the summary.

    Returns:
        A summary tagged ``source='live'``.

    Raises:
        KeyError: If ``daily`` or one of its series is missing.
        ValueError: If a series has fewer than three entries.
        TypeError: If a series holds non-numeric values.
    """
    daily = payload["daily"]
    series = {
        name: daily[name]
        for name in ("precipitation_sum", "temperature_2m_min", "temperature_2m_max")
    }
    for name, values in series.items():
        if not isinstance(values, list) or len(values) < FORECAST_DAYS:
            raise ValueError(f"daily.{name} needs at least {FORECAST_DAYS} entries")
        for value in values[:FORECAST_DAYS]:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"daily.{name} has non-numeric value {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"daily.{name} has non-finite value {value!r}")

    precipitation = sum(series["precipitation_sum"][:FORECAST_DAYS])
    temp_min = min(series["temperature_2m_min"][:FORECAST_DAYS])
    temp_max = max(series["temperature_2m_max"][:FORECAST_DAYS])
    if temp_min > temp_max:
        logger.warning(
            "Forecast minimum %s C is above maximum %s C; swapping", temp_min, temp_max,
        )
        temp_min, temp_max = temp_max, temp_min
    return ForecastSummary(
        precipitation_mm=max(0.0, round_half_away(precipitation, 1)),
        temp_min=int(round_half_away(temp_min)),
        temp_max=int(round_half_away(temp_max)),
        source=SOURCE_LIVE,
        timestamp=timestamp,
    )


def sample_forecast(timestamp: str) -> ForecastSummary:
    """The built-in forecast used when nothing better is available."""
    return ForecastSummary(
        precipitation_mm=SAMPLE_PRECIPITATION_MM,
        temp_min=SAMPLE_TEMP_MIN,
        temp_max=SAMPLE_TEMP_MAX,
        source=SOURCE_CACHED,
        timestamp=timestamp,
    )


# ---------------------------------------------------------------------------
# Provider (orchestrator)
# ---------------------------------------------------------------------------


class ForecastProvider:
    """Resolves a forecast through the live, cache and sample tiers.

    The cache holds one value for the whole process: the last live
    fetch wins, whatever coordinate it was for.

    Args:
        client: Weather API client.
        cache: Store for the last live forecast.
        clock: Returns the current UTC time. Injected for tests.
    """

    def __init__(
        self,
        client: WeatherClient,
        cache: ForecastCache,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._cache = cache
        self._clock = clock

    # -- Tiers ---------------------------------------------------------------

    def fetch_live(self, lat: float, lon: float) -> ForecastSummary:
        """Fetch, summarize and cache a live forecast.

        Raises:
            requests.RequestException: On network failure or bad status.
            KeyError, ValueError, TypeError: On a malformed payload.
        """
        payload = self._client.fetch_daily(lat, lon)
        if not isinstance(payload, dict):
            raise TypeError("forecast response is not a JSON object")
        now = self._clock()
        summary = summarize_daily(payload, _iso(now))
        try:
            self._cache.put(CACHE_KEY, {
                **summary.to_dict(),
                "cachedAt": int(now.timestamp() * 1000),
            })
        except CACHE_ERRORS as exc:
            logger.warning("Could not cache live forecast: %s", exc)
        logger.info(
            "Live forecast for (%.4f, %.4f): %.1f mm, %d..%d C",
            lat, lon, summary.precipitation_mm, summary.temp_min, summary.temp_max,
        )
        return summary

    def from_cache(self) -> ForecastSummary | None:
        """Return the cached forecast re-tagged ``'cached'``, if usable."""
        try:
            payload = self._cache.get(CACHE_KEY)
        except CACHE_ERRORS as exc:
            logger.warning("Could not read cached forecast: %s", exc)
            return None
        if payload is None:
            return None
        try:
            cached = ForecastSummary.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable cached forecast: %s", exc)
            return None
        return ForecastSummary(
            precipitation_mm=cached.precipitation_mm,
            temp_min=cached.temp_min,
            temp_max=cached.temp_max,
            source=SOURCE_CACHED,
            timestamp=cached.timestamp,
        )

    def sample(self) -> ForecastSummary:
        """Return the built-in sample forecast stamped with the current time."""
        return sample_forecast(_iso(self._clock()))

    # -- Resolution ----------------------------------------------------------

    def resolve(self, lat: float, lon: float) -> ForecastResult:
        """Run the three tiers in order and report which one answered."""
        try:
            return ForecastResult(self.fetch_live(lat, lon), TIER_LIVE)
        except (
            requests.RequestException, KeyError, ValueError, TypeError, IndexError,
        ) as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.warning("Live forecast failed, falling back to cache: %s", error)

        cached = self.from_cache()
        if cached is not None:
            return ForecastResult(cached, TIER_CACHE, error)

        logger.warning("No cached forecast available; using sample forecast")
        return ForecastResult(self.sample(), TIER_SAMPLE, error)

    def fetch_forecast(self, lat: float, lon: float) -> ForecastSummary:
        """Resolve a forecast and return just the summary."""
        return self.resolve(lat, lon).summary


# Process-wide slot used when no cache is passed to fetch_forecast.
_DEFAULT_CACHE = InMemoryForecastCache()


def fetch_forecast(
    lat: float,
    lon: float,
    cache: ForecastCache | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> ForecastSummary:
    """Forecast lookup through the live, cache and sample tiers.

    Without *cache*, successive calls share one in-process slot, so an
    offline call returns the last live result.
    """
    provider = ForecastProvider(
        client=OpenMeteoClient(timeout=timeout),
        cache=cache if cache is not None else _DEFAULT_CACHE,
    )
    return provider.fetch_forecast(lat, lon)

