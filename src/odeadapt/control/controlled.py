# src/odeadapt/control/controlled.py
"""
Controlled stepper: wraps an embedded base stepper with accept/reject logic.

A trial step (``try_step``) either accepts, returning the new state, the new
time and a suggested next step size, or rejects, returning the caller's state
and time untouched together with a smaller step size to retry with. ``step``
repeats trials until one is accepted.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, NamedTuple, Optional
import math

import numpy as np

from odeadapt.control.error_checker import MIN_DECREASE, ErrorChecker
from odeadapt.errors import ConfigError, StepAdjustmentError, StepSizeUnderflowError
from odeadapt.runtime import guards
from odeadapt.runtime.status import StepStatus

if TYPE_CHECKING:
    from odeadapt.steppers.base import EmbeddedStep, ErrorStepper, System

__all__ = ["ControlledStepper", "StepTrial"]


class StepTrial(NamedTuple):
    """Outcome of one trial step (see runtime.status for the contract)."""
    status: StepStatus
    x: Any
    t: float
    dt: float
    error: float

    @property
    def accepted(self) -> bool:
        return self.status == StepStatus.SUCCESS


class ControlledStepper:
    """
    Error-controlled single-step integrator.

    Args:
        stepper: Base stepper with ``step_with_error`` and ``meta.stepper_order`` /
            ``meta.error_order`` set.
        checker: Error checker; defaults to ``ErrorChecker()`` (atol=rtol=1e-6).
        max_trials: Rejections allowed within one ``step`` call.
        min_dt: Smallest step size ``step`` will try before giving up.
    """

    def __init__(
        self,
        stepper: ErrorStepper,
        checker: ErrorChecker | None = None,
        *,
        max_trials: int = 500,
        min_dt: float | None = None,
    ):
        meta = getattr(stepper, "meta", None)
        if meta is None or not callable(getattr(stepper, "step_with_error", None)):
            raise ConfigError(
                f"{type(stepper).__name__} has no step_with_error(); "
                "controlled stepping needs an embedded error estimate"
            )
        if meta.error_order is None or meta.stepper_order is None:
            raise ConfigError(f"Stepper '{meta.name}' does not declare stepper_order/error_order")
        if isinstance(max_trials, bool) or not isinstance(max_trials, int) or max_trials < 1:
            raise ConfigError(f"max_trials must be a positive integer; got {max_trials!r}")
        if min_dt is not None and min_dt < 0.0:
            raise ConfigError(f"min_dt must be non-negative; got {min_dt!r}")

        self._stepper = stepper
        self._checker = checker if checker is not None else ErrorChecker(algebra=getattr(stepper, "algebra", None))
        self.algebra = self._checker.algebra
        self.max_trials = max_trials
        self.min_dt = min_dt
        self._fsal = bool(meta.caps.fsal)

        # (t, x, dxdt) at the end of the last accepted step (FSAL reuse)
        self._cache: Optional[tuple[float, np.ndarray, np.ndarray]] = None
        # Last accepted EmbeddedStep (stages for dense output)
        self.last_step: Optional[EmbeddedStep] = None
        self.accepted_steps = 0
        self.rejected_steps = 0

    def __repr__(self) -> str:
        return f"ControlledStepper({self._stepper.meta.name}, {self._checker!r})"

    # ---------------- introspection ----------------

    @property
    def stepper(self) -> ErrorStepper:
        return self._stepper

    @property
    def checker(self) -> ErrorChecker:
        return self._checker

    @property
    def order(self) -> int:
        return self._stepper.meta.order

    @property
    def stepper_order(self) -> int:
        return self._stepper.meta.stepper_order

    @property
    def error_order(self) -> int:
        return self._stepper.meta.error_order

    @property
    def max_dt(self) -> float | None:
        return self._checker.max_dt

    def reset(self) -> None:
        """Forget the FSAL cache and the last accepted step."""
        self._cache = None
        self.last_step = None

    # ---------------- stepping ----------------

    def _cached_derivative(self, t: float, x: Any) -> Optional[np.ndarray]:
        if self._cache is None:
            return None
        t_c, x_c, dxdt_c = self._cache
        if t_c == t and np.array_equal(x_c, self.algebra.asarray(x)):
            return dxdt_c
        return None

    def try_step(self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None) -> StepTrial:
        """
        One trial step from (t, x) with size ``dt`` (clamped to the ceiling).

        Args:
            dxdt: f(t, x) if the caller already has it.

        Returns:
            StepTrial; on FAIL ``x`` is the object passed in and ``t`` is unchanged.
        """
        checker = self._checker
        dt = checker.limit(dt)

        if dxdt is None:
            dxdt = self._cached_derivative(t, x)
        if dxdt is None and checker.config.a_dxdt != 0.0:
            dxdt = self.algebra.asarray(system(t, self.algebra.asarray(x)))

        res = self._stepper.step_with_error(system, x, t, dt, dxdt)

        if self.algebra.all_finite(res.x) and self.algebra.all_finite(res.x_err):
            err = checker.error(res.x, x, res.x_err, dt, dxdt)
        else:
            err = math.inf

        if not err <= 1.0:
            self.rejected_steps += 1
            if guards.allfinite_scalar(err):
                dt_new = checker.decrease_step(dt, err, self.error_order)
            else:
                dt_new = checker.limit(dt * MIN_DECREASE)
            return StepTrial(StepStatus.FAIL, x, t, dt_new, err)

        t_new = t + dt
        self.accepted_steps += 1
        self.last_step = res
        if self._fsal and res.dxdt is not None:
            self._cache = (t_new, self.algebra.copy(res.x), res.dxdt)
        else:
            self._cache = None
        dt_next = checker.increase_step(dt, err, self.stepper_order)
        return StepTrial(StepStatus.SUCCESS, res.x, t_new, dt_next, err)

    def step(self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None) -> tuple[np.ndarray, float, float]:
        """
        Advance one accepted step, shrinking ``dt`` as often as needed.

        Returns:
            (x_new, t_new, dt_next)

        Raises:
            StepSizeUnderflowError: dt no longer changes t, or fell below min_dt.
            StepAdjustmentError: max_trials rejections in a row.
        """
        if not dt > 0.0:
            raise ValueError(f"dt must be positive; got {dt!r}")
        dt = self._checker.limit(dt)
        err: float | None = None
        for _ in range(self.max_trials):
            if t + dt == t or (self.min_dt is not None and dt < self.min_dt):
                raise StepSizeUnderflowError(t, dt, err)
            trial = self.try_step(system, x, t, dt, dxdt)
            if trial.accepted:
                return trial.x, trial.t, trial.dt
            dt, err = trial.dt, trial.error
        raise StepAdjustmentError(t, self.max_trials)
