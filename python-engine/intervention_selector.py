"""Crop-specific intervention lookup.

Maps (crop, risk level) to exactly three ordered field actions. The
table itself lives in ``data/interventions.json`` so agronomic content
can change without touching this module.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from risk_classifier import RiskLevel

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_TABLE_PATH = Path(__file__).resolve().parent / "data" / "interventions.json"
# Source checkouts and editable installs keep the table beside the module;
# regular installs put it under the environment's data prefix.
BUNDLED_TABLE_PATHS = (
    DEFAULT_TABLE_PATH,
    Path(sys.prefix) / "share" / "field-health-engine" / "interventions.json",
)
INTERVENTIONS_PER_PLAN = 3
SUPPORTED_CROPS = (
    "wheat", "barley", "maize", "sunflower", "potato", "vegetables", "orchard",
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Intervention:
    """A single recommended field action."""

    action: str
    timing: str

    def to_dict(self) -> dict[str, str]:
        return {"action": self.action, "timing": self.timing}


Plan = tuple[Intervention, Intervention, Intervention]
InterventionTable = dict[str, dict[str, Plan]]


def _plan(*pairs: tuple[str, str]) -> Plan:
    return tuple(Intervention(action, timing) for action, timing in pairs)  # type: ignore[return-value]


DEFAULT_PLANS: dict[RiskLevel, Plan] = {
    RiskLevel.HIGH: _plan(
        ("Increase monitoring frequency", "immediately"),
        ("Scout for pest and disease damage", "within 1 day"),
        ("Plan intervention strategy", "within 2 days"),
    ),
    RiskLevel.MEDIUM: _plan(
        ("Monitor field conditions regularly", "every 2 days"),
        ("Scout for pest and disease activity", "within 3 days"),
        ("Plan management actions", "within 1 week"),
    ),
    RiskLevel.LOW: _plan(
        ("Continue routine field monitoring", "weekly"),
        ("Document field conditions", "within 1 week"),
        ("Plan next management step", "within 2 weeks"),
    ),
}


# ---------------------------------------------------------------------------
# Table loading
# ---------------------------------------------------------------------------


def _parse_plan(raw: Any) -> Plan | None:
    """Validate one table entry; ``None`` if it is not three full actions."""
    if not isinstance(raw, list) or len(raw) != INTERVENTIONS_PER_PLAN:
        return None
    items = []
    for item in raw:
        if not isinstance(item, Mapping):
            return None
        action, timing = item.get("action"), item.get("timing")
        if not isinstance(action, str) or not action.strip():
            return None
        if not isinstance(timing, str) or not timing.strip():
            return None
        items.append(Intervention(action, timing))
    return tuple(items)  # type: ignore[return-value]


def parse_intervention_table(raw: Mapping[str, Any]) -> InterventionTable:
    """Build a validated table from decoded JSON.

    Entries that are not exactly three actions with non-empty ``action``
    and ``timing`` are dropped with a warning; the selector's fallback
    chain then covers the gap.

    Args:
        raw: ``{crop: {risk_level: [{action, timing}, ...]}}``.

    Returns:
        Table keyed by crop then risk level value.
    """
    table: InterventionTable = {}
    for crop, levels in raw.items():
        if not isinstance(levels, Mapping):
            logger.warning("Skipping crop %r: expected an object of risk levels", crop)
            continue
        plans: dict[str, Plan] = {}
        for level, entry in levels.items():
            plan = _parse_plan(entry)
            if plan is None:
                logger.warning(
                    "Skipping %s/%s: expected %d actions with action and timing",
                    crop, level, INTERVENTIONS_PER_PLAN,
                )
                continue
            plans[level] = plan
        table[crop] = plans
    return table


def load_intervention_table(path: str | Path = DEFAULT_TABLE_PATH) -> InterventionTable:
    """Read and validate an intervention table from a JSON file.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError(f"Intervention table {path} must be a JSON object")
    table = parse_intervention_table(raw)
    logger.debug("Loaded interventions for %d crops from %s", len(table), path)
    return table


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class InterventionSelector:
    """Deterministic lookup of three actions per crop and risk level.

    Fallbacks, in order: the crop's entry for the level; for an unknown
    crop, the default plan for the level; for a known crop without the
    level, the crop's LOW plan, then the default LOW plan.

    Args:
        table: Validated table from :func:`load_intervention_table`.
    """

    def __init__(self, table: InterventionTable) -> None:
        self._table = table

    @property
    def crops(self) -> list[str]:
        return sorted(self._table)

    def plans_for(self, crop_type: str) -> dict[str, Plan]:
        """All plans for one crop, keyed by risk level value."""
        return dict(self._table.get(crop_type, {}))

    def select(self, crop_type: str, risk_level: RiskLevel | str) -> list[Intervention]:
        """Return exactly three interventions for a crop and risk level."""
        level_key = getattr(risk_level, "value", risk_level)
        crop_plans = self._table.get(crop_type)
        if crop_plans is None:
            logger.warning(
                "Crop type %r not in intervention table; using default plan",
                crop_type,
            )
            return list(self._default_plan(level_key))

        plan = crop_plans.get(level_key)
        if plan is None:
            logger.warning(
                "Risk level %r not found for crop %r; using LOW plan",
                level_key, crop_type,
            )
            plan = crop_plans.get(RiskLevel.LOW.value) or DEFAULT_PLANS[RiskLevel.LOW]
        return list(plan)

    @staticmethod
    def _default_plan(level_key: str) -> Plan:
        try:
            return DEFAULT_PLANS[RiskLevel(level_key)]
        except ValueError:
            return DEFAULT_PLANS[RiskLevel.LOW]


def bundled_table_path() -> Path | None:
    """First bundled table location that exists, or ``None``."""
    for candidate in BUNDLED_TABLE_PATHS:
        if candidate.is_file():
            return candidate
    return None


@lru_cache(maxsize=None)
def default_selector(path: str | None = None) -> InterventionSelector:
    """Selector over the bundled (or given) table, loaded once per process.

    A missing bundled table degrades to the default plans for every
    crop. An explicit *path* that cannot be read still raises.

    Raises:
        OSError: If *path* is given and cannot be read.
        ValueError: If the table is not a JSON object.
    """
    if path:
        return InterventionSelector(load_intervention_table(path))
    bundled = bundled_table_path()
    if bundled is None:
        logger.warning(
            "Bundled intervention table not found in %s; using default plans",
            ", ".join(str(p) for p in BUNDLED_TABLE_PATHS),
        )
        return InterventionSelector({})
    return InterventionSelector(load_intervention_table(bundled))


def select_interventions(crop_type: str, risk_level: RiskLevel | str) -> list[Intervention]:
    """Pick three interventions from the bundled table."""
    return default_selector().select(crop_type, risk_level)
