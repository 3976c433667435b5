"""RGB vegetation index computation and field health scoring.

Computes two greenness proxies per pixel from a flat RGBA buffer
(ExG and an NDVI-like green/red ratio), then reduces an index array to
a single 0-100 health score.

Both formulas work on visible-light photos only. They approximate true
spectral indices; there is no near-infrared band involved.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EPSILON = 0.0001  # keeps all-black pixels finite
CHANNELS = 4  # R, G, B, A

VEGETATION_THRESHOLD = 0.05
FAIR_THRESHOLD = 0.35
SPARSE_VEGETATION_RATIO = 0.3
SPARSE_PENALTY = 0.8

PixelBuffer = Union[np.ndarray, Sequence[int], bytes, bytearray]
IndexArray = np.ndarray


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def round_half_away(value: float, places: int = 0) -> float:
    """Round to *places* decimals, ties away from zero.

    Goes through ``Decimal(repr(value))`` so that sums such as
    ``5.234 + 3.567 + 4.891`` round the way they read, not the way
    their binary representation happens to fall.

    Args:
        value: Finite number to round.
        places: Number of decimal places to keep.

    Returns:
        The rounded value as a float.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def _as_channels(pixels: PixelBuffer) -> np.ndarray:
    """View a flat RGBA buffer as an ``(n, 4)`` float64 array.

    A buffer whose length is not a multiple of 4 is truncated to the
    last complete pixel. That is a caller contract violation; it is
    tolerated, not corrected.
    """
    if isinstance(pixels, (bytes, bytearray)):
        flat = np.frombuffer(pixels, dtype=np.uint8)
    else:
        flat = np.asarray(pixels).reshape(-1)
    count = flat.size // CHANNELS
    if flat.size % CHANNELS:
        logger.debug(
            "Pixel buffer length %d is not a multiple of %d; using %d pixels",
            flat.size, CHANNELS, count,
        )
    return flat[: count * CHANNELS].astype(np.float64).reshape(count, CHANNELS)


# ---------------------------------------------------------------------------
# Index Computer
# ---------------------------------------------------------------------------


def compute_exg(pixels: PixelBuffer) -> IndexArray:
    """Compute the Excess Green index for every pixel.

    ExG = (2G - R - B) / (2G + R + B + eps), range [-1, +1] for 0-255
    channels.

    Args:
        pixels: Flat RGBA samples, each channel in [0, 255].

    Returns:
        One float per pixel, in input order.
    """
    rgba = _as_channels(pixels)
    r, g, b = rgba[:, 0], rgba[:, 1], rgba[:, 2]
    return (2 * g - r - b) / (2 * g + r + b + EPSILON)


def compute_ndvi_proxy(pixels: PixelBuffer) -> IndexArray:
    """Compute the green/red normalized difference for every pixel.

    NDVI-proxy = (G - R) / (G + R + eps). Blue and alpha are ignored.

    Args:
        pixels: Flat RGBA samples, each channel in [0, 255].

    Returns:
        One float per pixel, in input order.
    """
    rgba = _as_channels(pixels)
    r, g = rgba[:, 0], rgba[:, 1]
    return (g - r) / (g + r + EPSILON)


def mean_index(indices: Sequence[float]) -> float:
    """Arithmetic mean of an index array, 0.0 when empty."""
    values = np.asarray(indices, dtype=np.float64)
    if values.size == 0:
        return 0.0
    return float(np.mean(values))


def heatmap_bands(indices: Sequence[float]) -> list[str]:
    """Bucket each index into ``'poor'``, ``'fair'`` or ``'good'``.

    - **poor** (<0.05): soil, shadow, or dead material.
    - **fair** (0.05-0.35): sparse or stressed canopy.
    - **good** (>=0.35): dense green canopy.
    """
    values = np.asarray(indices, dtype=np.float64)
    bands = np.where(
        values < VEGETATION_THRESHOLD, "poor",
        np.where(values < FAIR_THRESHOLD, "fair", "good"),
    )
    return bands.tolist()


# ---------------------------------------------------------------------------
# Score Aggregator
# ---------------------------------------------------------------------------


def compute_global_score(indices: Sequence[float]) -> int:
    """Rescale the mean index from [-1, 1] to an integer 0-100 score.

    score = round(((mean + 1) / 2) * 100), ties away from zero.

    Args:
        indices: Per-pixel index values (NDVI-proxy in the default pipeline).

    Returns:
        Health score in [0, 100]. An empty array scores 0.
    """
    values = np.asarray(indices, dtype=np.float64)
    if values.size == 0:
        return 0
    mean = float(np.mean(values))
    if not np.isfinite(mean):
        logger.warning("Non-finite mean index %s; scoring 0", mean)
        return 0
    score = int(round_half_away((mean + 1) / 2 * 100))
    return min(100, max(0, score))


def compute_vegetation_weighted_score(indices: Sequence[float]) -> int:
    """Score only the vegetation pixels, penalizing sparse cover.

    Pixels above 0.05 count as vegetation. Their mean is mapped through
    a piecewise curve (30-100), and the result is cut by 20% when
    vegetation covers less than 30% of the frame. Frames with no
    vegetation score 0, 10 or 20 from the background mean.

    This variant gives different numbers than :func:`compute_global_score`
    for the same input; a pipeline must use one or the other.

    Args:
        indices: Per-pixel index values.

    Returns:
        Health score in [0, 100]. An empty array scores 0.
    """
    values = np.asarray(indices, dtype=np.float64)
    if values.size == 0:
        return 0

    is_vegetation = values > VEGETATION_THRESHOLD
    vegetation = values[is_vegetation]
    if vegetation.size == 0:
        background_mean = float(np.mean(values))
        if background_mean < -0.1:
            return 0
        if background_mean < 0:
            return 10
        return 20

    veg_mean = float(np.mean(vegetation))
    if veg_mean < 0.1:
        score = 30 + (veg_mean - 0.05) * 100
    elif veg_mean < 0.2:
        score = 35 + (veg_mean - 0.1) * 150
    elif veg_mean < 0.3:
        score = 50 + (veg_mean - 0.2) * 200
    elif veg_mean < 0.4:
        score = 70 + (veg_mean - 0.3) * 200
    else:
        score = 90 + min((veg_mean - 0.4) * 100, 10)

    if vegetation.size / values.size < SPARSE_VEGETATION_RATIO:
        score *= SPARSE_PENALTY

    return min(100, max(0, int(round_half_away(score))))


SCORE_STRATEGIES: dict[str, Callable[[Sequence[float]], int]] = {
    "mean": compute_global_score,
    "vegetation_weighted": compute_vegetation_weighted_score,
}


def get_score_strategy(name: str) -> Callable[[Sequence[float]], int]:
    """Look up a scoring rule by name.

    Raises:
        ValueError: If *name* is not a known strategy.
    """
    try:
        return SCORE_STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown score strategy {name!r}; "
            f"expected one of {sorted(SCORE_STRATEGIES)}"
        ) from None
