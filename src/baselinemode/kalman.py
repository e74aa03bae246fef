from __future__ import annotations

from typing import Iterable

import numpy as np


class KalmanFilter:
    """
    Scalar Kalman filter with a constant process model.

    Model:
        x_k = a * x_{k-1} + w_k    (w ~ N(0, q))
        z_k = h * x_k + v_k        (v ~ N(0, r))

    `q` and `r` are plain attributes and may be retuned between steps.
    One instance per channel; instances are not shared between threads.
    """

    def __init__(self, a: float, h: float, q: float, r: float, initial_p: float, initial_x: float):
        self.a = float(a)
        self.h = float(h)
        self.q = float(q)
        self.r = float(r)
        self.p = float(initial_p)
        self.x = float(initial_x)

    def step(self, z: float) -> float:
        # predict
        self.x = self.a * self.x
        self.p = self.a * self.p * self.a + self.q

        # correct
        gain = self.p * self.h / (self.h * self.p * self.h + self.r)
        self.x = self.x + gain * (z - self.h * self.x)
        self.p = (1.0 - gain * self.h) * self.p
        return self.x

    def smooth(self, values: Iterable[float]) -> np.ndarray:
        return np.fromiter((self.step(float(value)) for value in values), dtype=float)
