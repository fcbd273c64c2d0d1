# src/odeadapt/runtime/results.py
from __future__ import annotations
from typing import Any
import numpy as np

__all__ = ["TrajectoryRecorder"]


class TrajectoryRecorder:
    """
    Observer that records every (t, x) it is called with.

    Storage grows geometrically; ``times`` and ``states`` return views over the
    filled part (not copies).

    Shapes:
      - times:  (n,)
      - states: (n, *state_shape)
    """

    def __init__(self, cap: int = 256):
        if cap < 1:
            raise ValueError(f"cap must be >= 1; got {cap}")
        self._cap = int(cap)
        self._T: np.ndarray | None = None
        self._Y: np.ndarray | None = None
        self.n = 0

    def __call__(self, t: float, x: Any) -> None:
        y = np.asarray(x)
        if self._T is None:
            self._T = np.empty(self._cap, dtype=np.float64)
            self._Y = np.empty((self._cap,) + y.shape, dtype=np.result_type(y.dtype, np.float64))
        elif self.n == self._T.shape[0]:
            self._grow()
        self._T[self.n] = t
        self._Y[self.n] = y
        self.n += 1

    def _grow(self) -> None:
        new_cap = 2 * self._T.shape[0]
        T = np.empty(new_cap, dtype=self._T.dtype)
        Y = np.empty((new_cap,) + self._Y.shape[1:], dtype=self._Y.dtype)
        T[: self.n] = self._T[: self.n]
        Y[: self.n] = self._Y[: self.n]
        self._T, self._Y = T, Y

    def __len__(self) -> int:
        return self.n

    @property
    def times(self) -> np.ndarray:
        if self._T is None:
            return np.empty(0, dtype=np.float64)
        return self._T[: self.n]

    @property
    def states(self) -> np.ndarray:
        if self._Y is None:
            return np.empty((0,), dtype=np.float64)
        return self._Y[: self.n]

    def clear(self) -> None:
        self.n = 0
