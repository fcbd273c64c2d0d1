# src/odeadapt/runtime/guards.py
from __future__ import annotations

import math
from typing import Callable
import numpy as np

from odeadapt.runtime.jit import jit_compile

__all__ = ["allfinite", "allfinite_scalar", "finite_guard"]


def _allfinite_kernel(x: np.ndarray) -> bool:
    for i in range(x.size):
        if not math.isfinite(x[i]):
            return False
    return True


def allfinite(x: np.ndarray) -> bool:
    """True when every entry of ``x`` (any shape) is finite."""
    return bool(np.isfinite(x).all())


def allfinite_scalar(v: float) -> bool:
    return math.isfinite(v)


def finite_guard(jit: bool = False) -> Callable[[np.ndarray], bool]:
    """
    Return the state guard used by an algebra instance.

    With ``jit`` and numba installed the loop kernel is compiled and used for
    float64 states (it stops at the first bad entry); everything else goes
    through ``allfinite``.
    """
    if not jit:
        return allfinite
    kernel = jit_compile(_allfinite_kernel, jit=True, component="allfinite")
    if not kernel.jitted:
        return allfinite
    fn = kernel.fn

    def guard(x: np.ndarray) -> bool:
        a = np.ravel(x)
        if a.dtype != np.float64:
            return allfinite(a)
        return bool(fn(a))

    return guard
