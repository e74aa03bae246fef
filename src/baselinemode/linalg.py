"""Small dense solvers for the normal equations of the curve fitter."""
from __future__ import annotations

import numpy as np

SINGULAR_THRESHOLD = 1e-9


class SingularMatrixError(np.linalg.LinAlgError):
    """Raised when a pivot or determinant falls below SINGULAR_THRESHOLD."""


def solve(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve ``a @ x = b``, using the closed form when the system is 3x3."""

    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {a.shape}")
    if b.shape != (a.shape[0],):
        raise ValueError(f"Right-hand side has shape {b.shape}, expected ({a.shape[0]},)")
    if a.shape[0] == 3:
        return solve_3x3(a, b)
    return solve_gaussian(a, b)


def solve_3x3(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Cramer's rule on a 3x3 system."""

    (a00, a01, a02), (a10, a11, a12), (a20, a21, a22) = np.asarray(a, dtype=float)
    b0, b1, b2 = np.asarray(b, dtype=float)

    det = (
        a00 * (a11 * a22 - a12 * a21)
        - a01 * (a10 * a22 - a12 * a20)
        + a02 * (a10 * a21 - a11 * a20)
    )
    if abs(det) < SINGULAR_THRESHOLD:
        raise SingularMatrixError(f"Singular matrix (det={det:.3e})")

    inv_det = 1.0 / det
    x0 = (
        b0 * (a11 * a22 - a12 * a21)
        - a01 * (b1 * a22 - a12 * b2)
        + a02 * (b1 * a21 - a11 * b2)
    ) * inv_det
    x1 = (
        a00 * (b1 * a22 - a12 * b2)
        - b0 * (a10 * a22 - a12 * a20)
        + a02 * (a10 * b2 - b1 * a20)
    ) * inv_det
    x2 = (
        a00 * (a11 * b2 - b1 * a21)
        - a01 * (a10 * b2 - b1 * a20)
        + b0 * (a10 * a21 - a11 * a20)
    ) * inv_det
    return np.array([x0, x1, x2], dtype=float)


def solve_gaussian(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Gaussian elimination with partial pivoting and back-substitution."""

    a = np.asarray(a, dtype=float)
    n = a.shape[0]
    # augmented workspace, owned by this call only
    m = np.empty((n, n + 1), dtype=float)
    m[:, :n] = a
    m[:, n] = np.asarray(b, dtype=float)

    for k in range(n):
        pivot = k + int(np.argmax(np.abs(m[k:, k])))
        if pivot != k:
            m[[k, pivot]] = m[[pivot, k]]
        if abs(m[k, k]) < SINGULAR_THRESHOLD:
            raise SingularMatrixError(f"Singular matrix (pivot {k} = {m[k, k]:.3e})")
        factors = m[k + 1 :, k] / m[k, k]
        m[k + 1 :, k:] -= np.outer(factors, m[k, k:])

    x = np.zeros(n, dtype=float)
    for i in range(n - 1, -1, -1):
        x[i] = (m[i, n] - m[i, i + 1 : n] @ x[i + 1 :]) / m[i, i]
    return x
