"""Weighted moment statistics for per-channel value distributions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

FWHM_FACTOR = 2.355


class Moments(NamedTuple):
    mean: float
    sigma: float
    peak: float


@dataclass(frozen=True)
class ChannelStatistics:
    centroid: float
    sigma: float
    peak: float
    fwhm: float
    resolution: float


def calculate_moments(x: np.ndarray, y: np.ndarray) -> Moments:
    """Return weighted (mean, sigma, peak) of the distribution *y* over *x*.

    The variance is accumulated in a second pass once the mean is known.
    A zero total weight short-circuits to ``(0, 0, peak)``.
    """

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"x and y must have equal length ({x.size} != {y.size})")
    if y.size == 0:
        return Moments(0.0, 0.0, 0.0)

    peak = float(np.max(y))
    total = float(np.sum(y))
    if total == 0:
        return Moments(0.0, 0.0, peak)

    mean = float(np.sum(x * y) / total)
    diff = x - mean
    variance = float(np.sum(y * diff * diff) / total)
    return Moments(mean, float(np.sqrt(max(variance, 0.0))), peak)


def calculate_rms(x: np.ndarray, y: np.ndarray, mean: float) -> float:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    total = float(np.sum(y))
    if total == 0:
        return 0.0
    diff = x - mean
    value = float(np.sum(y * diff * diff) / total)
    return float(np.sqrt(max(value, 0.0)))


def summarize(centroid: float, sigma: float, peak: float) -> ChannelStatistics:
    fwhm = FWHM_FACTOR * sigma
    resolution = fwhm / centroid * 100.0 if centroid != 0 else 0.0
    return ChannelStatistics(
        centroid=float(centroid),
        sigma=float(sigma),
        peak=float(peak),
        fwhm=float(fwhm),
        resolution=float(resolution),
    )
