"""
pytest configuration for the field health engine test suite

Provides shared fixtures: fake weather clients, caches, a fixed clock
and synthetic pixel buffers.
"""

from datetime import datetime, timezone

import numpy as np
import pytest
import requests
from sqlalchemy import create_engine, text

from forecast_provider import ForecastProvider, InMemoryForecastCache, SqlForecastCache


FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
FIXED_ISO = "2026-10-18T12:00:00.000Z"


class FakeWeatherClient:
    """Returns a canned payload, or raises a canned error."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = []

    def fetch_daily(self, lat, lon):
        self.calls.append((lat, lon))
        if self.error is not None:
            raise self.error
        return self.payload


def uniform_pixels(r, g, b, count=100, a=255):
    """Flat RGBA buffer of *count* identical pixels."""
    return np.tile(np.array([r, g, b, a], dtype=np.uint8), count)


@pytest.fixture
def fixed_clock():
    """Clock pinned to 2026-10-18 12:00 UTC"""
    return lambda: FIXED_NOW


@pytest.fixture
def daily_payload():
    """Open-Meteo style daily payload with four days of data"""
    return {
        "latitude": 45.25,
        "longitude": 19.84,
        "daily": {
            "time": ["2026-10-18", "2026-10-19", "2026-10-20", "2026-10-21"],
            "precipitation_sum": [5.234, 3.567, 4.891, 9.0],
            "temperature_2m_min": [8.4, 6.6, 7.0, -3.0],
            "temperature_2m_max": [17.5, 20.4, 19.0, 30.0],
        },
    }


@pytest.fixture
def memory_cache():
    return InMemoryForecastCache()


@pytest.fixture
def live_provider(daily_payload, memory_cache, fixed_clock):
    """Provider whose network tier succeeds"""
    return ForecastProvider(FakeWeatherClient(daily_payload), memory_cache, fixed_clock)


@pytest.fixture
def offline_provider(memory_cache, fixed_clock):
    """Provider whose network tier always fails"""
    client = FakeWeatherClient(error=requests.ConnectionError("network unreachable"))
    return ForecastProvider(client, memory_cache, fixed_clock)


@pytest.fixture
def green_pixels():
    """Healthy canopy: NDVI-proxy just under 0.5"""
    return uniform_pixels(50, 150, 50)


@pytest.fixture
def soil_pixels():
    """Bare soil: NDVI-proxy of -0.2"""
    return uniform_pixels(150, 100, 80)


@pytest.fixture
def broken_sql_cache():
    """SQL cache whose backing table has been dropped"""
    engine = create_engine("sqlite://")
    cache = SqlForecastCache(engine)
    with engine.connect() as conn:
        conn.execute(text("DROP TABLE forecast_cache"))
        conn.commit()
    return cache


@pytest.fixture
def fresh_default_cache(monkeypatch):
    """Empty process-wide cache for module-level fetch_forecast"""
    cache = InMemoryForecastCache()
    monkeypatch.setattr("forecast_provider._DEFAULT_CACHE", cache)
    return cache
