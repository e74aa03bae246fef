"""Overflow-safe special functions shared by the curve models."""
from __future__ import annotations

import math

import numpy as np

MIN_VALUE = 1e-9
MAX_EXP_ARG = 100.0
SQRT_2 = math.sqrt(2.0)
SQRT_2PI = math.sqrt(2.0 * math.pi)

# Abramowitz & Stegun 7.1.26
_P = 0.3275911
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429


def clamped_exp(arg):
    """exp() with the argument clamped to +/-MAX_EXP_ARG."""

    return np.exp(np.clip(arg, -MAX_EXP_ARG, MAX_EXP_ARG))


def erfc(x):
    """Complementary error function, max abs error ~1.5e-7.

    Accepts scalars or arrays; scalars come back as ``float``.
    """

    arr = np.asarray(x, dtype=float)
    z = np.abs(arr)
    t = 1.0 / (1.0 + _P * z)
    poly = ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t
    value = poly * np.exp(-z * z)
    result = np.where(arr < 0, 2.0 - value, value)
    if result.ndim == 0:
        return float(result)
    return result


def finite_or_zero(values: np.ndarray) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    return np.where(np.isfinite(arr), arr, 0.0)
