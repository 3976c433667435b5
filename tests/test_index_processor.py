"""
Tests for vegetation index computation and health scoring
"""

import itertools

import numpy as np
import pytest

from conftest import uniform_pixels
from index_processor import (
    EPSILON,
    compute_exg,
    compute_global_score,
    compute_ndvi_proxy,
    compute_vegetation_weighted_score,
    get_score_strategy,
    heatmap_bands,
    mean_index,
    round_half_away,
)

CHANNEL_SAMPLES = [0, 1, 64, 127, 200, 254, 255]


@pytest.mark.unit
class TestIndexFormulas:
    """Per-pixel ExG and NDVI-proxy"""

    def test_exg_matches_closed_form(self):
        """ExG equals (2G - R - B) / (2G + R + B + eps) for sampled triples"""
        for r, g, b in itertools.product(CHANNEL_SAMPLES, repeat=3):
            value = compute_exg([r, g, b, 255])[0]
            expected = (2 * g - r - b) / (2 * g + r + b + EPSILON)
            assert value == pytest.approx(expected)
            assert -1 <= value <= 1

    def test_ndvi_proxy_matches_closed_form(self):
        """NDVI-proxy equals (G - R) / (G + R + eps) and ignores blue"""
        for r, g, b in itertools.product(CHANNEL_SAMPLES, repeat=3):
            value = compute_ndvi_proxy([r, g, b, 0])[0]
            expected = (g - r) / (g + r + EPSILON)
            assert value == pytest.approx(expected)
            assert -1 <= value <= 1

    def test_black_pixel_is_zero(self):
        """All-zero channels do not divide by zero"""
        assert compute_exg([0, 0, 0, 255])[0] == 0.0
        assert compute_ndvi_proxy([0, 0, 0, 255])[0] == 0.0

    def test_one_value_per_pixel_in_order(self):
        """Output length is pixel count and order is preserved"""
        pixels = [0, 255, 0, 255, 255, 0, 0, 255, 10, 10, 10, 255]
        ndvi = compute_ndvi_proxy(pixels)
        assert len(ndvi) == 3
        assert ndvi[0] > 0.99
        assert ndvi[1] < -0.99
        assert ndvi[2] == pytest.approx(0.0)

    def test_truncates_partial_pixel(self):
        """A trailing partial pixel is dropped"""
        pixels = [10, 200, 10, 255, 10, 200, 10, 255, 99, 99]
        assert len(compute_exg(pixels)) == 2
        assert len(compute_ndvi_proxy(pixels)) == 2

    def test_accepts_numpy_and_bytes(self):
        """uint8 arrays and raw bytes give the same result as lists"""
        pixels = uniform_pixels(40, 180, 60, count=5)
        from_array = compute_exg(pixels)
        from_bytes = compute_exg(pixels.tobytes())
        from_list = compute_exg(pixels.tolist())
        np.testing.assert_allclose(from_array, from_bytes)
        np.testing.assert_allclose(from_array, from_list)

    def test_uint8_does_not_overflow(self):
        """2 * 255 must not wrap around in uint8 arithmetic"""
        value = compute_exg(np.array([0, 255, 0, 255], dtype=np.uint8))[0]
        assert value == pytest.approx(510 / (510 + EPSILON))

    def test_empty_buffer(self):
        assert len(compute_exg([])) == 0
        assert len(compute_ndvi_proxy(b"")) == 0


@pytest.mark.unit
class TestGlobalScore:
    """Mean-rescale scoring"""

    @pytest.mark.parametrize("indices,expected", [
        ([0.5, 0.5], 75),
        ([-1], 0),
        ([0], 50),
        ([1], 100),
        ([-1, 1], 50),
        ([], 0),
    ])
    def test_known_values(self, indices, expected):
        assert compute_global_score(indices) == expected

    def test_rounds_half_away_from_zero(self):
        """A mean of 0.01 rescales to exactly 50.5, which rounds up"""
        assert compute_global_score([0.01]) == 51

    def test_matches_formula(self):
        """score == round(((mean + 1) / 2) * 100) over assorted arrays"""
        rng = np.random.default_rng(7)
        for _ in range(50):
            indices = rng.uniform(-1, 1, size=rng.integers(1, 400))
            score = compute_global_score(indices)
            expected = ((indices.mean() + 1) / 2) * 100
            assert abs(score - expected) <= 0.5 + 1e-9
            assert 0 <= score <= 100

    def test_non_finite_mean_scores_zero(self):
        assert compute_global_score([float("nan"), 0.5]) == 0


@pytest.mark.unit
class TestVegetationWeightedScore:
    """Vegetation/background weighted scoring variant"""

    def test_dense_canopy(self):
        assert compute_vegetation_weighted_score([0.5] * 10) == 100

    def test_moderate_canopy(self):
        assert compute_vegetation_weighted_score([0.25] * 10) == 60

    def test_sparse_canopy_is_penalized(self):
        """Vegetation on 25% of pixels costs 20%"""
        assert compute_vegetation_weighted_score([0.5, 0.0, 0.0, 0.0]) == 80

    @pytest.mark.parametrize("indices,expected", [
        ([-0.5, -0.2], 0),
        ([-0.05], 10),
        ([0.0, 0.05], 20),
    ])
    def test_no_vegetation(self, indices, expected):
        assert compute_vegetation_weighted_score(indices) == expected

    def test_empty(self):
        assert compute_vegetation_weighted_score([]) == 0

    def test_differs_from_mean_rule(self):
        """The two rules are distinct and must not be mixed"""
        indices = [0.5] * 10
        assert compute_vegetation_weighted_score(indices) != compute_global_score(indices)


@pytest.mark.unit
class TestHelpers:

    def test_strategy_lookup(self):
        assert get_score_strategy("mean") is compute_global_score
        assert get_score_strategy("vegetation_weighted") is compute_vegetation_weighted_score

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown score strategy"):
            get_score_strategy("median")

    def test_mean_index(self):
        assert mean_index([0.2, 0.4]) == pytest.approx(0.3)
        assert mean_index([]) == 0.0

    def test_heatmap_bands(self):
        assert heatmap_bands([0.0, 0.05, 0.2, 0.35, 0.9]) == [
            "poor", "fair", "fair", "good", "good",
        ]

    @pytest.mark.parametrize("value,places,expected", [
        (2.5, 0, 3.0),
        (-2.5, 0, -3.0),
        (74.49, 0, 74.0),
        (5.234 + 3.567 + 4.891, 1, 13.7),
        (0.05, 1, 0.1),
    ])
    def test_round_half_away(self, value, places, expected):
        assert round_half_away(value, places) == expected
