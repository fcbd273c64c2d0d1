# src/odeadapt/algebra.py
"""
State algebra: elementwise arithmetic and norms over state containers.

Steppers never touch a state container directly; they go through an algebra
so that numpy arrays of any shape, lists and tuples are all valid states.
The default :class:`NumpyAlgebra` converts inputs with ``numpy.asarray`` and
produces new float arrays; the only operation that writes into a caller's
container is :meth:`NumpyAlgebra.assign`.
"""
from __future__ import annotations
from typing import Any, Protocol, Sequence
import math

import numpy as np

from odeadapt.runtime import guards
from odeadapt.runtime.jit import jit_compile

__all__ = ["StateAlgebra", "NumpyAlgebra", "default_algebra"]


class StateAlgebra(Protocol):
    """Capability interface the steppers call for all state arithmetic."""

    def asarray(self, x: Any) -> np.ndarray: ...
    def copy(self, x: Any) -> np.ndarray: ...
    def scale_sum(self, x: Any, *pairs: tuple[float, Any]) -> np.ndarray: ...
    def combine(self, coeffs: Sequence[float], vectors: Sequence[Any]) -> np.ndarray: ...
    def abs(self, x: Any) -> np.ndarray: ...
    def norm_inf(self, x: Any) -> float: ...
    def all_finite(self, x: Any) -> bool: ...
    def assign(self, dst: Any, src: Any) -> Any: ...

    def rel_error(
        self,
        x_err: Any,
        x_old: Any,
        x_new: Any,
        dxdt_old: Any | None,
        dt: float,
        atol: float,
        rtol: float,
        a_x: float,
        a_dxdt: float,
    ) -> float: ...


def _rel_error_kernel(x_err, x_old, x_new, dxdt_old, dt, atol, rtol, a_x, a_dxdt):
    # x_err, x_old, x_new, dxdt_old: flat float64 arrays of equal size
    err = 0.0
    adt = abs(dt)
    for i in range(x_err.size):
        scale = a_x * max(abs(x_old[i]), abs(x_new[i]))
        if a_dxdt != 0.0:
            scale += a_dxdt * adt * abs(dxdt_old[i])
        e_i = abs(x_err[i]) / (atol + rtol * scale)
        if e_i != e_i:
            return e_i
        if e_i > err:
            err = e_i
    return err


class NumpyAlgebra:
    """
    numpy-backed state algebra.

    Args:
        dtype: Float dtype used for results when the input is not already a
            floating array. ``None`` keeps float inputs as they are and maps
            everything else to float64.
        jit: Compile the scaled-error reduction with numba (falls back to the
            vectorised path with a warning when numba is missing).
    """

    def __init__(self, dtype: np.dtype | str | None = None, *, jit: bool = False):
        self.dtype = None if dtype is None else np.dtype(dtype)
        self.jit = bool(jit)
        self._kernel = jit_compile(_rel_error_kernel, jit=jit, component="rel_error") if jit else None
        self._finite = guards.finite_guard(self._kernel is not None and self._kernel.jitted)

    def __repr__(self) -> str:
        return f"NumpyAlgebra(dtype={self.dtype}, jit={self.jit})"

    # ---------------- elementwise ----------------

    def asarray(self, x: Any) -> np.ndarray:
        a = np.asarray(x)
        if self.dtype is not None:
            return a.astype(self.dtype, copy=False)
        if not np.issubdtype(a.dtype, np.floating) and not np.issubdtype(a.dtype, np.complexfloating):
            return a.astype(np.float64)
        return a

    def copy(self, x: Any) -> np.ndarray:
        return np.array(self.asarray(x), copy=True)

    def scale_sum(self, x: Any, *pairs: tuple[float, Any]) -> np.ndarray:
        """Return ``x + sum(c_i * v_i)`` as a new array."""
        out = self.copy(x)
        for c, v in pairs:
            if c != 0.0:
                out += c * self.asarray(v)
        return out

    def combine(self, coeffs: Sequence[float], vectors: Sequence[Any]) -> np.ndarray:
        """Return ``sum(c_i * v_i)``; zero coefficients are skipped."""
        out = None
        for c, v in zip(coeffs, vectors):
            if c == 0.0:
                continue
            term = c * self.asarray(v)
            out = term if out is None else out + term
        if out is None:
            return np.zeros_like(self.asarray(vectors[0]))
        return out

    def abs(self, x: Any) -> np.ndarray:
        return np.abs(self.asarray(x))

    # ---------------- reductions ----------------

    def norm_inf(self, x: Any) -> float:
        a = self.asarray(x)
        if a.size == 0:
            return 0.0
        return float(np.max(np.abs(a)))

    def all_finite(self, x: Any) -> bool:
        return self._finite(self.asarray(x))

    def rel_error(
        self,
        x_err: Any,
        x_old: Any,
        x_new: Any,
        dxdt_old: Any | None,
        dt: float,
        atol: float,
        rtol: float,
        a_x: float,
        a_dxdt: float,
    ) -> float:
        """
        Max-norm of ``|x_err| / (atol + rtol * (a_x * max(|x_old|, |x_new|) + a_dxdt * |dt| * |dxdt_old|))``.

        The derivative term is dropped when ``dxdt_old`` is None or ``a_dxdt`` is 0.
        """
        err = np.ravel(self.asarray(x_err))
        old = np.ravel(self.asarray(x_old))
        new = np.ravel(self.asarray(x_new))
        if err.size == 0:
            return 0.0
        use_dxdt = dxdt_old is not None and a_dxdt != 0.0

        if self._kernel is not None and self._kernel.jitted and err.dtype == np.float64:
            dxdt = np.ravel(self.asarray(dxdt_old)) if use_dxdt else err
            return float(self._kernel.fn(
                np.ascontiguousarray(err), np.ascontiguousarray(old),
                np.ascontiguousarray(new), np.ascontiguousarray(dxdt),
                float(dt), float(atol), float(rtol),
                float(a_x), float(a_dxdt) if use_dxdt else 0.0,
            ))

        scale = a_x * np.maximum(self.abs(old), self.abs(new))
        if use_dxdt:
            scale = scale + a_dxdt * abs(dt) * self.abs(np.ravel(self.asarray(dxdt_old)))
        ratio = self.abs(err) / (atol + rtol * scale)
        if np.isnan(ratio).any():
            return math.nan
        return self.norm_inf(ratio)

    # ---------------- in-place ----------------

    def assign(self, dst: Any, src: Any) -> Any:
        """Write ``src`` into the caller-owned container ``dst`` and return it."""
        if isinstance(dst, np.ndarray):
            dst[...] = src
            return dst
        if isinstance(dst, list):
            dst[:] = np.asarray(src).tolist()
            return dst
        raise TypeError(
            f"state of type {type(dst).__name__} cannot be updated in place; "
            "pass a numpy array or a list"
        )


_DEFAULT = NumpyAlgebra()


def default_algebra() -> NumpyAlgebra:
    return _DEFAULT
