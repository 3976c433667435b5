"""Field risk classification from vegetation index and forecast rainfall.

Combines the mean NDVI-proxy of a photo with the 3-day precipitation
total into a HIGH / MEDIUM / LOW risk level and a fixed three-line
summary.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from intervention_selector import Intervention, InterventionSelector

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CRITICAL_INDEX = 0.05
STRESSED_INDEX = 0.18
MODERATE_INDEX = 0.25
WET_MODERATE_INDEX = 0.35

DROUGHT_PRECIP_MM = 5
FLOOD_PRECIP_MM = 40
WET_PRECIP_MM = 30


class RiskLevel(str, Enum):
    """Coarse field risk. Ordered HIGH > MEDIUM > LOW for display only."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


CRITICAL_SUMMARY = (
    "CRITICAL VEGETATION STRESS: HIGH",
    "Immediate intervention required.",
    "Prioritize irrigation and nutrient support.",
)
DROUGHT_SUMMARY = (
    "SHORT-TERM DROUGHT RISK: HIGH",
    "Vegetation stress detected.",
    "Prioritize irrigation.",
)
FLOOD_SUMMARY = (
    "FLOOD/STRESS RISK: HIGH",
    "Excessive moisture with weak vegetation.",
    "Monitor for disease and drainage issues.",
)
MEDIUM_SUMMARY = (
    "MODERATE RISK: MEDIUM",
    "Vegetation shows some stress indicators.",
    "Monitor closely and plan interventions.",
)
LOW_SUMMARY = (
    "FIELD CONDITIONS: GOOD",
    "Vegetation health is satisfactory.",
    "Continue routine field management.",
)


@dataclass(frozen=True)
class RiskAssessment:
    """Risk level, summary text and the three recommended actions."""

    risk_level: RiskLevel
    summary: str
    interventions: tuple[Intervention, ...]


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------


def _sanitize(index: float, precipitation_mm: float) -> tuple[float, float]:
    """Replace non-finite inputs before the rule table sees them.

    A NaN or infinite index carries no usable vegetation signal and is
    pinned below the critical threshold. A NaN or infinite rainfall
    total is read as no rain.
    """
    if not math.isfinite(index):
        logger.warning("Non-finite vegetation index %r; treating as critical", index)
        index = -1.0
    if not math.isfinite(precipitation_mm):
        logger.warning(
            "Non-finite precipitation %r mm; treating as 0.0", precipitation_mm,
        )
        precipitation_mm = 0.0
    return index, precipitation_mm


def _classify(index: float, precipitation_mm: float) -> tuple[RiskLevel, tuple[str, str, str]]:
    """Evaluate the rule table top to bottom; first match wins.

    All comparisons are strict, so a value sitting exactly on a
    threshold falls through to the next rule.
    """
    if index < CRITICAL_INDEX:
        return RiskLevel.HIGH, CRITICAL_SUMMARY
    if precipitation_mm < DROUGHT_PRECIP_MM and index < STRESSED_INDEX:
        return RiskLevel.HIGH, DROUGHT_SUMMARY
    if precipitation_mm > FLOOD_PRECIP_MM and index < STRESSED_INDEX:
        return RiskLevel.HIGH, FLOOD_SUMMARY
    if index < MODERATE_INDEX or (
        precipitation_mm > WET_PRECIP_MM and index < WET_MODERATE_INDEX
    ):
        return RiskLevel.MEDIUM, MEDIUM_SUMMARY
    return RiskLevel.LOW, LOW_SUMMARY


def compute_risk_score(index: float, precipitation_mm: float) -> RiskLevel:
    """Classify field risk.

    Rules, in order:

    1. index < 0.05 -> HIGH (critical stress)
    2. rain < 5 mm and index < 0.18 -> HIGH (drought)
    3. rain > 40 mm and index < 0.18 -> HIGH (flood/stress)
    4. index < 0.25, or rain > 30 mm and index < 0.35 -> MEDIUM
    5. otherwise LOW

    Args:
        index: Mean vegetation index of the photo.
        precipitation_mm: 3-day cumulative precipitation.

    Returns:
        The risk level.
    """
    level, _ = _classify(*_sanitize(float(index), float(precipitation_mm)))
    return level


def generate_risk_summary(
    risk_level: RiskLevel | str,
    index: float,
    precipitation_mm: float,
) -> str:
    """Build the three-line summary for a classified field.

    The HIGH wording is chosen by which HIGH rule the numbers satisfy.
    If *risk_level* disagrees with the numbers, the wording follows the
    numbers, so the text is always one of the five fixed variants.

    Returns:
        Three lines joined by ``\\n``.
    """
    index, precipitation_mm = _sanitize(float(index), float(precipitation_mm))
    level, lines = _classify(index, precipitation_mm)
    try:
        requested: RiskLevel | None = RiskLevel(risk_level)
    except ValueError:
        requested = None
    if requested is RiskLevel.MEDIUM:
        lines = MEDIUM_SUMMARY
    elif requested is RiskLevel.LOW:
        lines = LOW_SUMMARY
    elif requested is not level:
        logger.warning(
            "Risk level %s does not match index %.3f / %.1f mm (%s); "
            "summarizing as %s",
            risk_level, index, precipitation_mm, level.value, level.value,
        )
    return "\n".join(lines)


def compute_risk_assessment(
    index: float,
    precipitation_mm: float,
    crop_type: str,
    selector: InterventionSelector | None = None,
) -> RiskAssessment:
    """Classify risk, word the summary and pick interventions in one call.

    Args:
        index: Mean vegetation index of the photo.
        precipitation_mm: 3-day cumulative precipitation.
        crop_type: Crop identifier for the intervention lookup.
        selector: Intervention source. Defaults to the bundled table.

    Returns:
        A :class:`RiskAssessment`.
    """
    from intervention_selector import default_selector

    selector = selector or default_selector()
    level = compute_risk_score(index, precipitation_mm)
    summary = generate_risk_summary(level, index, precipitation_mm)
    interventions = selector.select(crop_type, level)
    logger.debug(
        "Risk %s for %s (index %.3f, %.1f mm)",
        level.value, crop_type, index, precipitation_mm,
    )
    return RiskAssessment(
        risk_level=level,
        summary=summary,
        interventions=tuple(interventions),
    )
