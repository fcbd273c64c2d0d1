# src/odeadapt/control/error_checker.py
"""
Scaled error norm and step-size adaptation rules.

    err = max_i |x_err_i| / (atol + rtol * (a_x * max(|x_old_i|, |x_new_i|)
                                            + a_dxdt * |dt| * |dxdt_old_i|))

    decrease:  dt * max(SAFETY * err^(-1/(error_order-1)), MIN_DECREASE)
    increase:  dt * max(1, SAFETY * max(err, 5^-order)^(-1/order))   if err <= GROWTH_THRESHOLD
               dt                                                    otherwise

Both results are clamped to ``max_dt`` when a ceiling is configured.
"""
from __future__ import annotations
from typing import Any

from odeadapt.algebra import NumpyAlgebra, default_algebra
from odeadapt.config import ControllerConfig
from odeadapt.errors import ConfigError

__all__ = ["ErrorChecker", "SAFETY", "MIN_DECREASE", "GROWTH_THRESHOLD", "GROWTH_ERROR_BASE"]

SAFETY = 0.9
MIN_DECREASE = 0.2
GROWTH_THRESHOLD = 0.5
# error is floored at GROWTH_ERROR_BASE**-order, capping growth at SAFETY*GROWTH_ERROR_BASE
GROWTH_ERROR_BASE = 5.0


class ErrorChecker:
    """
    Error norm and step-size rules for a controlled stepper.

    Args:
        atol: Absolute tolerance (> 0).
        rtol: Relative tolerance (> 0).
        a_x: Weight of the state magnitude in the relative scale.
        a_dxdt: Weight of ``|dt * dxdt|`` in the relative scale.
        max_dt: Step-size ceiling; ``None`` or 0 means unlimited.
        algebra: State algebra used for the reduction.
    """

    def __init__(
        self,
        atol: float = 1e-6,
        rtol: float = 1e-6,
        a_x: float = 1.0,
        a_dxdt: float = 0.0,
        max_dt: float | None = None,
        *,
        algebra: NumpyAlgebra | None = None,
    ):
        # ControllerConfig carries the validation rules
        self.config = ControllerConfig(atol=atol, rtol=rtol, a_x=a_x, a_dxdt=a_dxdt, max_dt=max_dt)
        self.algebra = algebra or default_algebra()

    @classmethod
    def from_config(cls, config: ControllerConfig, *, algebra: NumpyAlgebra | None = None) -> "ErrorChecker":
        return cls(
            atol=config.atol,
            rtol=config.rtol,
            a_x=config.a_x,
            a_dxdt=config.a_dxdt,
            max_dt=config.max_dt,
            algebra=algebra,
        )

    def __repr__(self) -> str:
        c = self.config
        return (
            f"ErrorChecker(atol={c.atol}, rtol={c.rtol}, a_x={c.a_x}, "
            f"a_dxdt={c.a_dxdt}, max_dt={c.max_dt})"
        )

    @property
    def atol(self) -> float:
        return self.config.atol

    @property
    def rtol(self) -> float:
        return self.config.rtol

    @property
    def max_dt(self) -> float | None:
        """Configured ceiling, or None when unlimited."""
        return self.config.max_dt if self.config.max_dt else None

    def limit(self, dt: float) -> float:
        """Clamp ``dt`` to the ceiling."""
        max_dt = self.max_dt
        if max_dt is not None and dt > max_dt:
            return max_dt
        return dt

    def error(self, x_new: Any, x_old: Any, x_err: Any, dt: float, dxdt_old: Any | None = None) -> float:
        """Dimensionless max-norm of the error estimate; <= 1 means acceptable."""
        c = self.config
        return self.algebra.rel_error(
            x_err, x_old, x_new, dxdt_old, dt, c.atol, c.rtol, c.a_x, c.a_dxdt
        )

    def decrease_step(self, dt: float, error: float, error_order: int) -> float:
        """Shrink ``dt`` after a rejected step with scaled error ``error`` (> 1)."""
        if error_order is None or error_order < 2:
            raise ConfigError(f"error_order must be >= 2 to shrink the step; got {error_order!r}")
        factor = SAFETY * error ** (-1.0 / (error_order - 1))
        dt *= max(factor, MIN_DECREASE)
        return self.limit(dt)

    def increase_step(self, dt: float, error: float, stepper_order: int) -> float:
        """Suggest the next ``dt`` after an accepted step; never shrinks below ``dt`` unless capped."""
        if error <= GROWTH_THRESHOLD:
            error = max(GROWTH_ERROR_BASE ** (-stepper_order), error)
            dt *= max(1.0, SAFETY * error ** (-1.0 / stepper_order))
        return self.limit(dt)
