"""Field assessment pipeline.

Runs one photo through the whole chain: vegetation indices, health
score, forecast lookup, risk classification and intervention
selection, producing a shareable :class:`AssessmentState`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from forecast_provider import ForecastProvider, ForecastResult
from geolocation import validate_geolocation
from index_processor import (
    PixelBuffer,
    compute_exg,
    compute_global_score,
    compute_ndvi_proxy,
    mean_index,
)
from intervention_selector import Intervention, InterventionSelector
from risk_classifier import RiskLevel, compute_risk_assessment
from state_codec import decode_state, encode_state, generate_share_url

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssessmentState:
    """The shareable result of one analysis run."""

    photo: str
    crop_type: str
    score: int
    risk_summary: str
    interventions: tuple[Intervention, ...]
    lat: float
    lon: float
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """camelCase form used in share tokens."""
        return {
            "photo": self.photo,
            "cropType": self.crop_type,
            "score": self.score,
            "riskSummary": self.risk_summary,
            "interventions": [i.to_dict() for i in self.interventions],
            "geolocation": {"lat": self.lat, "lon": self.lon},
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssessmentState:
        """Rebuild a state from :meth:`to_dict` output.

        Raises:
            ValueError: If a required field is missing or mistyped.
        """
        try:
            geo = data["geolocation"]
            return cls(
                photo=str(data.get("photo", "")),
                crop_type=str(data["cropType"]),
                score=int(data["score"]),
                risk_summary=str(data["riskSummary"]),
                interventions=tuple(
                    Intervention(str(i["action"]), str(i["timing"]))
                    for i in data["interventions"]
                ),
                lat=float(geo["lat"]),
                lon=float(geo["lon"]),
                timestamp=str(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Not an assessment state: {exc}") from exc

    def to_token(self) -> str:
        return encode_state(self.to_dict())

    @classmethod
    def from_token(cls, token: str) -> AssessmentState:
        """Decode a share token into a state.

        Raises:
            state_codec.DecodeError: If the token is malformed.
            ValueError: If it decodes to something that is not a state.
        """
        return cls.from_dict(decode_state(token))

    def share_url(self, base_url: str) -> str:
        return generate_share_url(self.to_dict(), base_url)


@dataclass(frozen=True)
class AssessmentResult:
    """A state plus the intermediate values that produced it."""

    state: AssessmentState
    risk_level: RiskLevel
    mean_index: float
    exg_mean: float
    forecast: ForecastResult


# ---------------------------------------------------------------------------
# Assessor (orchestrator)
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FieldAssessor:
    """Orchestrates one field assessment.

    Uses constructor injection for the forecast source and intervention
    table so the pipeline can run against fakes.

    Args:
        forecast_provider: Resolves the 3-day forecast.
        selector: Intervention lookup.
        score_strategy: Reduces the NDVI-proxy array to a 0-100 score.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        forecast_provider: ForecastProvider,
        selector: InterventionSelector,
        score_strategy: Callable[[Sequence[float]], int] = compute_global_score,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._forecast_provider = forecast_provider
        self._selector = selector
        self._score_strategy = score_strategy
        self._clock = clock

    def assess(
        self,
        pixels: PixelBuffer,
        crop_type: str,
        lat: float,
        lon: float,
        photo_ref: str = "",
    ) -> AssessmentResult:
        """Assess one photo of a field.

        Args:
            pixels: Flat RGBA buffer of the (downsampled) photo.
            crop_type: Crop identifier, e.g. ``'wheat'``.
            lat: Field latitude.
            lon: Field longitude.
            photo_ref: Thumbnail or reference stored in the state.

        Returns:
            An :class:`AssessmentResult`.

        Raises:
            ValueError: If the coordinates are invalid.
        """
        check = validate_geolocation(lat, lon)
        if not check.valid:
            raise ValueError(check.message)

        ndvi = compute_ndvi_proxy(pixels)
        exg = compute_exg(pixels)
        score = self._score_strategy(ndvi)
        veg_index = mean_index(ndvi)
        exg_mean = mean_index(exg)
        logger.info(
            "Assessing %s field at (%.4f, %.4f): %d pixels, score %d",
            crop_type, lat, lon, ndvi.size, score,
        )
        logger.debug("Mean NDVI-proxy %.4f, mean ExG %.4f", veg_index, exg_mean)

        forecast = self._forecast_provider.resolve(lat, lon)
        risk = compute_risk_assessment(
            veg_index, forecast.summary.precipitation_mm, crop_type, self._selector,
        )

        state = AssessmentState(
            photo=photo_ref,
            crop_type=crop_type,
            score=score,
            risk_summary=risk.summary,
            interventions=risk.interventions,
            lat=float(lat),
            lon=float(lon),
            timestamp=self._clock().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )
        logger.info(
            "Assessment complete: risk %s, forecast tier %s",
            risk.risk_level.value, forecast.tier,
        )
        return AssessmentResult(
            state=state,
            risk_level=risk.risk_level,
            mean_index=veg_index,
            exg_mean=exg_mean,
            forecast=forecast,
        )
