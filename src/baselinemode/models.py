"""Peak models and the Levenberg-Marquardt fitter."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, NamedTuple, Optional, Sequence

import numpy as np

from .config import FitModel
from .linalg import SingularMatrixError, solve
from .metrics import Moments, calculate_moments, calculate_rms
from .numerics import MIN_VALUE, SQRT_2, SQRT_2PI, clamped_exp, erfc, finite_or_zero

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 100
DAMPING = 1e-3
TOLERANCE = 1e-6
FD_STEP = 1e-5

ModelFn = Callable[..., np.ndarray]
JacobianFn = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass
class FitResult:
    """Fitted curve and peak descriptors for one channel histogram."""

    curve: np.ndarray
    centroid: float
    width: float
    peak: float
    rms: float
    model: str
    iterations: int = 0
    converged: bool = False

    @classmethod
    def empty(cls, length: int, model: str) -> "FitResult":
        return cls(
            curve=np.zeros(length, dtype=float),
            centroid=0.0,
            width=0.0,
            peak=0.0,
            rms=0.0,
            model=model,
        )

    @property
    def is_empty(self) -> bool:
        return not np.any(self.curve)

    def as_dict(self) -> dict[str, object]:
        return {
            "model": self.model,
            "centroid": self.centroid,
            "width": self.width,
            "peak": self.peak,
            "rms": self.rms,
            "iterations": self.iterations,
            "converged": self.converged,
        }


class LMOutcome(NamedTuple):
    params: np.ndarray
    iterations: int
    converged: bool


def gaussian(x: np.ndarray, amplitude: float, mu: float, sigma: float) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    safe_sigma = sigma if abs(sigma) > MIN_VALUE else MIN_VALUE
    diff = x - mu
    values = amplitude * clamped_exp(-0.5 * diff * diff / (safe_sigma * safe_sigma))
    return finite_or_zero(values)


def gaussian_jacobian(x: np.ndarray, params: np.ndarray) -> np.ndarray:
    """Analytic derivatives of `gaussian` w.r.t. (amplitude, mu, sigma)."""

    amplitude, mu, sigma = params
    x = np.asarray(x, dtype=float)
    safe_sigma = sigma if abs(sigma) > MIN_VALUE else MIN_VALUE
    diff = x - mu
    sigma2 = safe_sigma * safe_sigma
    g = clamped_exp(-0.5 * diff * diff / sigma2)
    jac = np.empty((x.size, 3), dtype=float)
    jac[:, 0] = g
    jac[:, 1] = amplitude * g * diff / sigma2
    jac[:, 2] = amplitude * g * diff * diff / (sigma2 * safe_sigma)
    return finite_or_zero(jac)


def hyper_emg(x: np.ndarray, amplitude: float, mu: float, sigma: float, tau: float) -> np.ndarray:
    """Gaussian convolved with a one-sided exponential tail of decay *tau*."""

    x = np.asarray(x, dtype=float)
    tau = max(tau, MIN_VALUE)
    sigma = max(sigma, MIN_VALUE)
    inv_tau = 1.0 / tau
    sigma2 = sigma * sigma
    diff = x - mu
    exp_arg = sigma2 * 0.5 * inv_tau * inv_tau - diff * inv_tau
    erfc_arg = (sigma2 - tau * diff) / (SQRT_2 * sigma * tau)
    with np.errstate(over="ignore", invalid="ignore"):
        values = (amplitude * 0.5 * inv_tau) * clamped_exp(exp_arg) * erfc(erfc_arg)
    return finite_or_zero(values)


def finite_difference_jacobian(model: ModelFn, x: np.ndarray, params: np.ndarray, step: float = FD_STEP) -> np.ndarray:
    base = model(x, *params)
    jac = np.empty((np.size(x), params.size), dtype=float)
    for k in range(params.size):
        shifted = params.copy()
        shifted[k] += step
        jac[:, k] = (model(x, *shifted) - base) / step
    return finite_or_zero(jac)


def levenberg_marquardt(
    x: np.ndarray,
    y: np.ndarray,
    params: Sequence[float],
    model: ModelFn,
    jacobian: JacobianFn,
    *,
    floors: Optional[Sequence[float]] = None,
    damping: float = DAMPING,
    max_iter: int = MAX_ITERATIONS,
    tolerance: float = TOLERANCE,
    cancel=None,
) -> LMOutcome:
    """Damped Gauss-Newton iterations with a fixed damping term.

    Solves ``(J^T J + damping * I) delta = J^T r`` every iteration and stops
    once every component of ``delta`` is below *tolerance*. A singular
    system or a non-finite update ends the loop with the last valid
    parameters. *cancel* is any object with ``is_set()``.
    """

    p = np.array(params, dtype=float)
    lower = np.array(floors, dtype=float) if floors is not None else None
    identity = np.eye(p.size)
    iterations = 0
    converged = False

    for iteration in range(max_iter):
        if cancel is not None and cancel.is_set():
            logger.debug("Fit cancelled after %d iterations", iterations)
            break
        residuals = y - model(x, *p)
        jac = jacobian(x, p)
        jtj = jac.T @ jac + damping * identity
        jtr = jac.T @ residuals
        try:
            delta = solve(jtj, jtr)
        except SingularMatrixError as exc:
            logger.debug("Stopping at iteration %d: %s", iteration, exc)
            break
        candidate = p + delta
        if lower is not None:
            candidate = np.maximum(candidate, lower)
        if not np.all(np.isfinite(candidate)):
            logger.debug("Stopping at iteration %d: non-finite update", iteration)
            break
        p = candidate
        iterations = iteration + 1
        if np.all(np.abs(delta) < tolerance):
            converged = True
            break

    return LMOutcome(p, iterations, converged)


def _valid_guess(guess: Moments) -> bool:
    return (
        guess.peak > 0
        and np.isfinite(guess.sigma)
        and guess.sigma > MIN_VALUE
        and np.isfinite(guess.mean)
    )


def gaussian_fit(x: np.ndarray, y: np.ndarray, *, cancel=None) -> FitResult:
    """Fit ``A exp(-(x-mu)^2 / 2 sigma^2)`` seeded from the weighted moments."""

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    guess = calculate_moments(x, y)
    if not _valid_guess(guess):
        logger.debug("Invalid Gaussian guess %s, returning empty fit", guess)
        return FitResult.empty(x.size, FitModel.GAUSSIAN.value)

    outcome = levenberg_marquardt(
        x,
        y,
        [guess.peak, guess.mean, guess.sigma],
        gaussian,
        gaussian_jacobian,
        cancel=cancel,
    )
    amplitude, mu, sigma = (float(value) for value in outcome.params)
    curve = gaussian(x, amplitude, mu, sigma)
    logger.debug(
        "Gaussian fit: A=%.3f mu=%.3f sigma=%.3f (%d iterations, converged=%s)",
        amplitude,
        mu,
        sigma,
        outcome.iterations,
        outcome.converged,
    )
    return FitResult(
        curve=curve,
        centroid=mu,
        width=abs(sigma),
        peak=amplitude,
        rms=calculate_rms(x, curve, mu),
        model=FitModel.GAUSSIAN.value,
        iterations=outcome.iterations,
        converged=outcome.converged,
    )


def hyper_emg_fit(x: np.ndarray, y: np.ndarray, *, cancel=None) -> FitResult:
    """Fit the Hyper-EMG model with a finite-difference Jacobian.

    The seed takes the area from the Gaussian moments
    (``A = peak * sigma * sqrt(2 pi)``) and a tail of ``tau = sigma / 2``.
    """

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    guess = calculate_moments(x, y)
    if not _valid_guess(guess):
        logger.debug("Invalid Hyper-EMG guess %s, returning empty fit", guess)
        return FitResult.empty(x.size, FitModel.HYPER_EMG.value)

    seed = [guess.peak * guess.sigma * SQRT_2PI, guess.mean, guess.sigma, guess.sigma * 0.5]
    outcome = levenberg_marquardt(
        x,
        y,
        seed,
        hyper_emg,
        partial(finite_difference_jacobian, hyper_emg),
        floors=[MIN_VALUE, -np.inf, MIN_VALUE, MIN_VALUE],
        cancel=cancel,
    )
    amplitude, mu, sigma, tau = (float(value) for value in outcome.params)
    curve = hyper_emg(x, amplitude, mu, sigma, tau)
    logger.debug(
        "Hyper-EMG fit: A=%.3f mu=%.3f sigma=%.3f tau=%.3f (%d iterations, converged=%s)",
        amplitude,
        mu,
        sigma,
        tau,
        outcome.iterations,
        outcome.converged,
    )
    return FitResult(
        curve=curve,
        centroid=mu,
        width=sigma,
        peak=float(np.max(curve)) if curve.size else 0.0,
        rms=calculate_rms(x, curve, mu),
        model=FitModel.HYPER_EMG.value,
        iterations=outcome.iterations,
        converged=outcome.converged,
    )


def fit_curve(x: np.ndarray, y: np.ndarray, model: FitModel | str, *, cancel=None) -> FitResult:
    model = FitModel(model)
    if model is FitModel.HYPER_EMG:
        return hyper_emg_fit(x, y, cancel=cancel)
    return gaussian_fit(x, y, cancel=cancel)
