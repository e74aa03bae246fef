from __future__ import annotations

import numpy as np
import pytest

from baselinemode.linalg import SingularMatrixError, solve, solve_3x3, solve_gaussian


def test_solve_3x3_matches_numpy() -> None:
    a = np.array([[4.0, 1.0, 2.0], [1.0, 5.0, 3.0], [2.0, 3.0, 6.0]])
    b = np.array([1.0, 2.0, 3.0])
    assert np.allclose(solve_3x3(a, b), np.linalg.solve(a, b))
    assert np.allclose(solve(a, b), np.linalg.solve(a, b))


def test_solve_4x4_with_pivoting() -> None:
    a = np.array(
        [
            [0.0, 2.0, 1.0, 1.0],
            [3.0, 1.0, 0.0, 2.0],
            [1.0, 0.0, 4.0, 1.0],
            [2.0, 1.0, 1.0, 5.0],
        ]
    )
    b = np.array([1.0, -2.0, 0.5, 3.0])
    assert np.allclose(solve(a, b), np.linalg.solve(a, b))
    # inputs untouched
    assert a[0, 0] == 0.0


def test_singular_systems_raise() -> None:
    singular3 = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [1.0, 0.0, 1.0]])
    with pytest.raises(SingularMatrixError):
        solve(singular3, np.ones(3))
    with pytest.raises(SingularMatrixError):
        solve_gaussian(np.zeros((4, 4)), np.ones(4))
    assert issubclass(SingularMatrixError, np.linalg.LinAlgError)


def test_shape_validation() -> None:
    with pytest.raises(ValueError):
        solve(np.ones((2, 3)), np.ones(2))
    with pytest.raises(ValueError):
        solve(np.eye(3), np.ones(4))
