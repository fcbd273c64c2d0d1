# src/odeadapt/control/dense_output.py
"""
Dense-output stepper: a controlled stepper that owns its state and time and
can evaluate the solution anywhere inside the last accepted step.

Interpolation:
  - base stepper with ``caps.dense_output`` (Dormand-Prince): its own
    continuous extension over the stored stages.
  - any other embedded stepper: cubic Hermite interpolant through
    (x_old, f_old) and (x_new, f_new). f_new is evaluated once per step and
    handed to the next step as its first stage.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from odeadapt.control.controlled import ControlledStepper
from odeadapt.errors import DenseOutputRangeError, StepperNotInitializedError

if TYPE_CHECKING:
    from odeadapt.steppers.base import System

__all__ = ["DenseOutputStepper", "hermite_interpolate"]


def hermite_interpolate(theta: float, dt: float, x0, f0, x1, f1) -> np.ndarray:
    """Cubic Hermite interpolation at t0 + theta*dt."""
    th2 = theta * theta
    th3 = th2 * theta
    h00 = 2.0 * th3 - 3.0 * th2 + 1.0
    h10 = th3 - 2.0 * th2 + theta
    h01 = -2.0 * th3 + 3.0 * th2
    h11 = th3 - th2
    return h00 * x0 + (h10 * dt) * f0 + h01 * x1 + (h11 * dt) * f1


class DenseOutputStepper:
    """
    Controlled stepping with interpolation inside the last step.

    Usage::

        ds = DenseOutputStepper(ControlledStepper(DormandPrince5(), ErrorChecker(1e-6, 1e-6)))
        ds.initialize(x0, 0.0, 0.01)
        t_old, t_new = ds.do_step(f)
        x_mid = ds.calc_state(0.5 * (t_old + t_new))
    """

    def __init__(self, controlled: ControlledStepper):
        if not isinstance(controlled, ControlledStepper):
            raise TypeError(
                f"DenseOutputStepper wraps a ControlledStepper; got {type(controlled).__name__}"
            )
        self._controlled = controlled
        self.algebra = controlled.algebra
        self._native = bool(controlled.stepper.meta.caps.dense_output) and callable(
            getattr(controlled.stepper, "interpolate", None)
        )
        self._x: Optional[np.ndarray] = None
        self._t = 0.0
        self._dt = 0.0
        self._dxdt: Optional[np.ndarray] = None
        self._x_old: Optional[np.ndarray] = None
        self._t_old = 0.0
        self._dxdt_old: Optional[np.ndarray] = None
        self._stages: Optional[tuple] = None

    def __repr__(self) -> str:
        return f"DenseOutputStepper({self._controlled!r})"

    # ---------------- introspection ----------------

    @property
    def controlled(self) -> ControlledStepper:
        return self._controlled

    @property
    def stepper(self):
        return self._controlled.stepper

    @property
    def order(self) -> int:
        return self._controlled.order

    @property
    def max_dt(self) -> float | None:
        return self._controlled.max_dt

    @property
    def is_initialized(self) -> bool:
        return self._x is not None

    @property
    def has_step(self) -> bool:
        """True once at least one step was taken since initialize()."""
        return self._x_old is not None

    @property
    def current_state(self) -> np.ndarray:
        self._require_initialized()
        return self._x

    @property
    def current_time(self) -> float:
        return self._t

    @property
    def current_time_step(self) -> float:
        return self._dt

    @property
    def previous_state(self) -> np.ndarray:
        self._require_step()
        return self._x_old

    @property
    def previous_time(self) -> float:
        return self._t_old

    # ---------------- lifecycle ----------------

    def initialize(self, x0: Any, t0: float, dt0: float) -> None:
        """Set state, time and the next step size; previous interval is dropped."""
        if not dt0 > 0.0:
            raise ValueError(f"dt0 must be positive; got {dt0!r}")
        self._x = self.algebra.copy(x0)
        self._t = t0
        self._dt = self._controlled.checker.limit(dt0)
        self._dxdt = None
        self._x_old = None
        self._dxdt_old = None
        self._stages = None
        self._controlled.reset()

    def reset(self) -> None:
        self._x = None
        self._x_old = None
        self._dxdt = None
        self._dxdt_old = None
        self._stages = None
        self._controlled.reset()

    def _require_initialized(self) -> None:
        if self._x is None:
            raise StepperNotInitializedError("dense_output", 0, 1)

    def _require_step(self) -> None:
        self._require_initialized()
        if self._x_old is None:
            raise StepperNotInitializedError("dense_output", 0, 1)

    # ---------------- stepping ----------------

    def do_step(self, system: System) -> tuple[float, float]:
        """Take one accepted step; returns the interval (t_old, t_new) it covers."""
        self._require_initialized()
        alg = self.algebra
        if self._dxdt is None and not self._native:
            self._dxdt = alg.asarray(system(self._t, self._x))

        x_new, t_new, dt_next = self._controlled.step(system, self._x, self._t, self._dt, self._dxdt)
        last = self._controlled.last_step

        self._x_old, self._t_old = self._x, self._t
        if self._native:
            self._stages = last.stages
            self._dxdt_old = None
            self._dxdt = last.dxdt
        else:
            self._dxdt_old = self._dxdt
            self._dxdt = last.dxdt if last.dxdt is not None else alg.asarray(system(t_new, x_new))

        self._x, self._t, self._dt = x_new, t_new, dt_next
        return self._t_old, self._t

    def calc_state(self, t: float) -> np.ndarray:
        """State at ``t`` in [previous_time, current_time]."""
        self._require_step()
        t_old, t_new = self._t_old, self._t
        if t < t_old or t > t_new:
            raise DenseOutputRangeError(t, t_old, t_new)
        if t == t_new:
            return self.algebra.copy(self._x)
        if t == t_old:
            return self.algebra.copy(self._x_old)

        dt = t_new - t_old
        theta = (t - t_old) / dt
        if self._native:
            return self.stepper.interpolate(theta, self._x_old, dt, self._stages)
        return hermite_interpolate(theta, dt, self._x_old, self._dxdt_old, self._x, self._dxdt)
