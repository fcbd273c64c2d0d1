# src/odeadapt/steppers/ode/adams_bashforth.py
"""
Adams-Bashforth (explicit, variable order 2..8, self-starting) multistep stepper.

For order k the new state is

    y_{n+1} = y_n + dt * sum_{i=0}^{k-1} w_i * f_{n-i}

where f_{n-i} are the k most recent derivative samples. When the history is
uniformly spaced with spacing dt the classical coefficients are used:

    k = 2:  w = [3, -1] / 2
    k = 3:  w = [23, -16, 5] / 12
    k = 4:  w = [55, -59, 37, -9] / 24
    ...

Any other history (an outer driver changed dt between calls) uses
coefficients from integrating the Lagrange interpolant of the history over
[t, t + dt], so non-uniform grids keep the full order. Those weights grow
roughly like (dt / spacing)**(k-1) when dt is much larger than the history
spacing, amplifying rounding in the stored derivatives. When their absolute
sum exceeds REBUILD_FACTOR times that of the classical table the history is
rebuilt instead: the starter integrates backward from (t, x) to
t - dt, ..., t - (k-1)*dt and the classical coefficients are used. The
system must therefore be defined up to (k-1)*dt before t.

Startup:
  - initialize() samples f(t, x), then runs k-1 sub-steps of size dt with a
    tightly toleranced Dormand-Prince controlled stepper, sampling f after
    each, so the history holds k entries on a uniform grid.
  - do_step() is only valid once the history is full.
  - restarts counts history rebuilds since the last initialize().

History layout (``collections.deque(maxlen=k)``, oldest first):

    [f_{n-k+1}, ..., f_{n-1}, f_n]
"""
from __future__ import annotations
from collections import deque
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple
import math

import numpy as np
from numpy.polynomial import polynomial as P

from ..base import StepperCaps, StepperMeta
from ..registry import register
from odeadapt.algebra import NumpyAlgebra, default_algebra
from odeadapt.errors import ConfigError, HistoryMismatchError, StepperNotInitializedError

if TYPE_CHECKING:
    from ..base import Observer, System

__all__ = [
    "AdamsBashforth", "HistoryEntry", "Phase", "AB_COEFFICIENTS",
    "MIN_ORDER", "MAX_ORDER", "REBUILD_FACTOR", "variable_coefficients",
]

MIN_ORDER = 2
MAX_ORDER = 8

# Classical coefficients, newest sample first
AB_COEFFICIENTS = {
    2: np.array([3.0, -1.0]) / 2.0,
    3: np.array([23.0, -16.0, 5.0]) / 12.0,
    4: np.array([55.0, -59.0, 37.0, -9.0]) / 24.0,
    5: np.array([1901.0, -2774.0, 2616.0, -1274.0, 251.0]) / 720.0,
    6: np.array([4277.0, -7923.0, 9982.0, -7298.0, 2877.0, -475.0]) / 1440.0,
    7: np.array([198721.0, -447288.0, 705549.0, -688256.0, 407139.0, -134472.0, 19087.0]) / 60480.0,
    8: np.array([
        434241.0, -1152169.0, 2183877.0, -2664477.0,
        2102243.0, -1041723.0, 295767.0, -36799.0,
    ]) / 120960.0,
}

# Sum of |w| per order for the classical table
_CLASSICAL_NORM = {k: float(np.abs(w).sum()) for k, w in AB_COEFFICIENTS.items()}
# Variable weights larger than this multiple of the classical norm trigger a rebuild
REBUILD_FACTOR = 10.0

# Starter tolerances; the starter must not dominate the local error of an order-8 step
_STARTER_TOL = 1e-12
# Relative tolerance for treating history spacing as equal to dt
_UNIFORM_RTOL = 1e-10


class Phase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    STEADY_STATE = "steady_state"


class HistoryEntry(NamedTuple):
    """One derivative sample: f evaluated at time t, reached with step dt."""
    t: float
    dt: float
    dxdt: np.ndarray


def variable_coefficients(times: np.ndarray, t: float, dt: float) -> np.ndarray:
    """
    Adams-Bashforth weights for arbitrary sample times.

    Args:
        times: Sample times, newest first; ``times[0]`` must equal ``t``.
        t: Start of the step.
        dt: Step size.

    Returns:
        w with ``y(t + dt) ~= y(t) + dt * sum(w_i * f(times[i]))``.
    """
    s = (np.asarray(times, dtype=np.float64) - t) / dt
    k = s.size
    w = np.empty(k)
    for i in range(k):
        others = np.delete(s, i)
        basis = P.polyfromroots(others) / np.prod(s[i] - others)
        w[i] = P.polyval(1.0, P.polyint(basis))
    return w


def _default_starter(algebra: NumpyAlgebra):
    from odeadapt.control.controlled import ControlledStepper
    from odeadapt.control.error_checker import ErrorChecker
    from .dopri5 import DormandPrince5

    checker = ErrorChecker(atol=_STARTER_TOL, rtol=_STARTER_TOL, algebra=algebra)
    return ControlledStepper(DormandPrince5(algebra=algebra), checker)


@register
class AdamsBashforth:
    """
    Explicit Adams-Bashforth method of order 2..8 with its own startup.

    The stepper does not adapt dt itself; an outer driver may vary dt between
    calls and the coefficients follow the actual history spacing.

    The class-level ``meta.order`` is None since the order is chosen per
    instance; every instance carries a ``meta`` with its own order.
    """
    meta = StepperMeta(
        name="adams_bashforth",
        time_control="multistep",
        family="adams-bashforth",
        order=None,
        stepper_order=None,
        error_order=None,
        aliases=("ab", "adams_bashforth_adaptive"),
        caps=StepperCaps(),
    )

    def __init__(self, order: int = 5, *, starter=None, algebra: NumpyAlgebra | None = None):
        if isinstance(order, bool) or not isinstance(order, (int, np.integer)):
            raise ConfigError(f"adams_bashforth: order must be an integer; got {order!r}")
        if not MIN_ORDER <= order <= MAX_ORDER:
            raise ConfigError(
                f"adams_bashforth: order must be in [{MIN_ORDER}, {MAX_ORDER}]; got {order}"
            )
        self.algebra = algebra or default_algebra()
        self._order = int(order)
        self.meta = replace(type(self).meta, order=self._order, stepper_order=self._order)
        self._starter = starter
        self._history: deque[HistoryEntry] = deque(maxlen=self._order)
        self._phase = Phase.UNINITIALIZED
        self._steps = 0
        self._restarts = 0

    def __repr__(self) -> str:
        return f"AdamsBashforth(order={self._order}, phase={self._phase.value})"

    # ---------------- introspection ----------------

    @property
    def order(self) -> int:
        return self._order

    @property
    def stepper_order(self) -> int:
        return self._order

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_initialized(self) -> bool:
        return self._phase is Phase.STEADY_STATE

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def steps(self) -> int:
        """Number of do_step calls since the last initialize()."""
        return self._steps

    @property
    def restarts(self) -> int:
        """Number of history rebuilds since the last initialize()."""
        return self._restarts

    @property
    def starter(self):
        if self._starter is None:
            self._starter = _default_starter(self.algebra)
        return self._starter

    def reset(self) -> None:
        self._history.clear()
        self._phase = Phase.UNINITIALIZED
        self._steps = 0
        self._restarts = 0

    # ---------------- stepping ----------------

    def _march(self, system: System, y: np.ndarray, dt: float):
        """
        Run the starter on ``system`` from local time 0, yielding ``(i, y_i)``
        at exactly ``i*dt`` for i = 1..order-1.
        """
        starter = self.starter
        if hasattr(starter, "reset"):
            starter.reset()
        h = dt
        s = 0.0
        for i in range(1, self._order):
            s_end = i * dt
            while s < s_end:
                y, s_new, h = starter.step(system, y, s, min(h, s_end - s))
                # land exactly on the grid so the history stays uniform
                s = s_end if math.isclose(s_new, s_end, rel_tol=1e-12, abs_tol=1e-15) else s_new
            yield i, y

    def initialize(
        self, system: System, x: Any, t: float, dt: float, observer: Observer | None = None
    ) -> float:
        """
        Fill the history with ``order`` samples spaced by ``dt``.

        ``x`` is advanced in place to ``t + (order-1)*dt``; ``observer`` (if
        given) sees every intermediate sub-step end. Returns the new time.
        """
        if not dt > 0.0:
            raise ValueError(f"adams_bashforth: dt must be positive; got {dt!r}")
        alg = self.algebra
        self.reset()
        self._phase = Phase.INITIALIZING

        y = alg.copy(x)
        self._history.append(HistoryEntry(t, 0.0, alg.copy(system(t, y))))

        t_cur = t
        for i, y in self._march(lambda s, z: system(t + s, z), y, dt):
            t_cur = t + i * dt
            self._history.append(HistoryEntry(t_cur, dt, alg.copy(system(t_cur, y))))
            if observer is not None:
                alg.assign(x, y)
                observer(t_cur, x)

        alg.assign(x, y)
        self._phase = Phase.STEADY_STATE
        return t_cur

    def _rebuild(self, system: System, x: Any, dt: float) -> None:
        """
        Resample the history at t, t - dt, ..., t - (order-1)*dt, where t is the
        newest history time, by running the starter backward from ``x``.
        """
        alg = self.algebra
        newest = self._history[-1]
        t = newest.t

        def backward(s, z):
            return -alg.asarray(system(t - s, z))

        behind = []
        for i, y in self._march(backward, alg.copy(x), dt):
            t_i = t - i * dt
            behind.append(HistoryEntry(t_i, dt, alg.copy(system(t_i, y))))
        self._history.clear()
        self._history.extend(reversed(behind))
        self._history.append(newest)
        self._restarts += 1

    def do_step(self, system: System, x: Any, t: float, dt: float) -> float:
        """
        One Adams-Bashforth step from (t, x); ``x`` is updated in place.

        Returns ``t + dt``.
        """
        if self._phase is not Phase.STEADY_STATE or len(self._history) < self._order:
            raise StepperNotInitializedError(self.meta.name, len(self._history), self._order)
        t_last = self._history[-1].t
        if not math.isclose(t, t_last, rel_tol=1e-12, abs_tol=1e-14):
            raise HistoryMismatchError(self.meta.name, t, t_last)

        alg = self.algebra
        w = self._weights(t, dt)
        if w is None:
            self._rebuild(system, x, dt)
            w = AB_COEFFICIENTS[self._order]
        newest_first = list(reversed(self._history))
        y_new = alg.scale_sum(x, *((dt * wi, e.dxdt) for wi, e in zip(w, newest_first)))
        t_new = t + dt

        self._history.append(HistoryEntry(t_new, dt, alg.copy(system(t_new, y_new))))
        alg.assign(x, y_new)
        self._steps += 1
        return t_new

    def _weights(self, t: float, dt: float) -> np.ndarray | None:
        """Weights for the current history, or None when they are too ill-conditioned to use."""
        times = np.array([e.t for e in reversed(self._history)])
        gaps = times[:-1] - times[1:]
        if np.allclose(gaps, dt, rtol=_UNIFORM_RTOL, atol=0.0):
            return AB_COEFFICIENTS[self._order]
        w = variable_coefficients(times, t, dt)
        if not np.abs(w).sum() <= REBUILD_FACTOR * _CLASSICAL_NORM[self._order]:
            return None
        return w
