"""
Tests for risk classification and summary wording
"""

import math

import pytest

from intervention_selector import select_interventions
from risk_classifier import (
    RiskLevel,
    compute_risk_assessment,
    compute_risk_score,
    generate_risk_summary,
)


@pytest.mark.unit
class TestRiskScore:
    """Rule table, evaluated top to bottom"""

    @pytest.mark.parametrize("precip", [0, 4.9, 5, 20, 40, 40.1, 500])
    @pytest.mark.parametrize("index", [-1, -0.3, 0, 0.049])
    def test_critical_stress_ignores_precipitation(self, index, precip):
        assert compute_risk_score(index, precip) is RiskLevel.HIGH

    @pytest.mark.parametrize("index", [0.05, 0.1, 0.179])
    @pytest.mark.parametrize("precip", [0, 2.5, 4.99])
    def test_drought(self, index, precip):
        assert compute_risk_score(index, precip) is RiskLevel.HIGH

    @pytest.mark.parametrize("index", [0.05, 0.1, 0.179])
    @pytest.mark.parametrize("precip", [40.01, 60, 250])
    def test_flood(self, index, precip):
        assert compute_risk_score(index, precip) is RiskLevel.HIGH

    @pytest.mark.parametrize("index,precip,expected", [
        (0.05, 20, RiskLevel.MEDIUM),   # exactly at the critical threshold
        (0.1, 5, RiskLevel.MEDIUM),     # exactly at the drought threshold
        (0.1, 40, RiskLevel.MEDIUM),    # exactly at the flood threshold
        (0.18, 2, RiskLevel.MEDIUM),    # index at the stress threshold
        (0.24, 15, RiskLevel.MEDIUM),
        (0.25, 15, RiskLevel.LOW),
        (0.3, 35, RiskLevel.MEDIUM),    # wet with moderate canopy
        (0.3, 30, RiskLevel.LOW),       # exactly at the wet threshold
        (0.35, 80, RiskLevel.LOW),
        (0.6, 0, RiskLevel.LOW),
    ])
    def test_boundaries(self, index, precip, expected):
        assert compute_risk_score(index, precip) is expected

    def test_level_is_plain_text(self):
        assert compute_risk_score(0.5, 10) == "LOW"
        assert RiskLevel.HIGH.value == "HIGH"


@pytest.mark.unit
class TestNonFiniteInputs:
    """NaN and infinities are sanitized before classification"""

    @pytest.mark.parametrize("index", [math.nan, math.inf, -math.inf])
    def test_non_finite_index_is_critical(self, index):
        assert compute_risk_score(index, 20) is RiskLevel.HIGH
        summary = generate_risk_summary(RiskLevel.HIGH, index, 20)
        assert summary.startswith("CRITICAL VEGETATION STRESS: HIGH")

    def test_non_finite_precipitation_reads_as_dry(self):
        assert compute_risk_score(0.5, math.nan) is RiskLevel.LOW
        assert compute_risk_score(0.1, math.inf) is RiskLevel.HIGH
        summary = generate_risk_summary(RiskLevel.HIGH, 0.1, math.nan)
        assert summary.startswith("SHORT-TERM DROUGHT RISK: HIGH")


@pytest.mark.unit
class TestRiskSummary:
    """Three-line summary variants"""

    def test_critical_scenario(self):
        level = compute_risk_score(0.03, 20)
        summary = generate_risk_summary(level, 0.03, 20)
        assert level is RiskLevel.HIGH
        assert "CRITICAL VEGETATION STRESS: HIGH" in summary.split("\n")[0]

    def test_drought_wording(self):
        assert generate_risk_summary("HIGH", 0.1, 3).split("\n") == [
            "SHORT-TERM DROUGHT RISK: HIGH",
            "Vegetation stress detected.",
            "Prioritize irrigation.",
        ]

    def test_flood_wording(self):
        assert generate_risk_summary("HIGH", 0.1, 45).startswith("FLOOD/STRESS RISK: HIGH")

    def test_medium_wording(self):
        assert generate_risk_summary("MEDIUM", 0.2, 10).startswith("MODERATE RISK: MEDIUM")

    def test_low_wording(self):
        assert generate_risk_summary(RiskLevel.LOW, 0.6, 10).startswith("FIELD CONDITIONS: GOOD")

    def test_mismatched_high_follows_numbers(self):
        """HIGH for a healthy field cannot produce empty or HIGH wording"""
        summary = generate_risk_summary("HIGH", 0.6, 10)
        assert summary.startswith("FIELD CONDITIONS: GOOD")

    @pytest.mark.parametrize("index,precip", [
        (0.0, 0), (0.1, 2), (0.1, 50), (0.2, 10), (0.3, 35), (0.7, 12),
    ])
    def test_always_three_lines(self, index, precip):
        level = compute_risk_score(index, precip)
        summary = generate_risk_summary(level, index, precip)
        assert summary.count("\n") == 2
        assert all(line for line in summary.split("\n"))


@pytest.mark.integration
class TestRiskAssessment:

    def test_combines_level_summary_and_interventions(self):
        assessment = compute_risk_assessment(0.15, 3, "wheat")
        assert assessment.risk_level is RiskLevel.HIGH
        assert assessment.summary.startswith("SHORT-TERM DROUGHT RISK: HIGH")
        assert list(assessment.interventions) == select_interventions("wheat", "HIGH")
        assert len(assessment.interventions) == 3

    def test_unknown_crop_still_gets_three_actions(self):
        assessment = compute_risk_assessment(0.5, 10, "quinoa")
        assert assessment.risk_level is RiskLevel.LOW
        assert len(assessment.interventions) == 3
