"""Coordinate validation for forecast lookups.

Returns a result object instead of raising, so callers can show the
message next to the offending input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real
from typing import Any

LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a coordinate check. ``message`` is set when invalid."""

    valid: bool
    message: str | None = None
    lat: float | None = None
    lon: float | None = None


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_geolocation(latitude: Any, longitude: Any) -> ValidationResult:
    """Check that a latitude/longitude pair is finite and in range.

    Args:
        latitude: Degrees, [-90, 90].
        longitude: Degrees, [-180, 180].

    Returns:
        A :class:`ValidationResult`; the message names the bad field.
    """
    if not _is_number(latitude) or not _is_number(longitude):
        return ValidationResult(False, "Latitude and longitude must be numbers.")
    if not math.isfinite(latitude) or not math.isfinite(longitude):
        return ValidationResult(False, "Latitude and longitude must be finite numbers.")
    if not LAT_RANGE[0] <= latitude <= LAT_RANGE[1]:
        return ValidationResult(False, "Latitude must be between -90 and 90.")
    if not LON_RANGE[0] <= longitude <= LON_RANGE[1]:
        return ValidationResult(False, "Longitude must be between -180 and 180.")
    return ValidationResult(True, lat=float(latitude), lon=float(longitude))


def parse_and_validate_geolocation(lat_text: str, lon_text: str) -> ValidationResult:
    """Parse free-text coordinates, then validate them."""
    try:
        lat = float(str(lat_text).strip())
        lon = float(str(lon_text).strip())
    except ValueError:
        return ValidationResult(False, "Please enter valid numbers.")
    if math.isnan(lat) or math.isnan(lon):
        return ValidationResult(False, "Please enter valid numbers.")
    return validate_geolocation(lat, lon)
