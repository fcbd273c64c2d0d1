# src/odeadapt/steppers/ode/rk4.py
"""
RK4 (Runge-Kutta 4th order, explicit, fixed-step) stepper implementation.

Classic fixed-step RK4. Used directly by the fixed-step drivers.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any
import numpy as np

from ..base import StepperMeta
from ..registry import register
from odeadapt.algebra import NumpyAlgebra, default_algebra

if TYPE_CHECKING:
    from ..base import System

__all__ = ["RungeKutta4"]


@register
class RungeKutta4:
    """
    Classic 4th-order Runge-Kutta stepper (explicit, fixed-step).

    Formula:
        k1 = f(t, y)
        k2 = f(t + dt/2, y + dt/2 * k1)
        k3 = f(t + dt/2, y + dt/2 * k2)
        k4 = f(t + dt, y + dt * k3)
        y_{n+1} = y_n + dt/6 * (k1 + 2*k2 + 2*k3 + k4)
    """
    meta = StepperMeta(
        name="rk4",
        time_control="fixed",
        family="runge-kutta",
        order=4,
        stepper_order=4,
        error_order=None,
        aliases=("rk4_classic", "runge_kutta4"),
    )

    def __init__(self, algebra: NumpyAlgebra | None = None):
        self.algebra = algebra or default_algebra()

    @property
    def order(self) -> int:
        return self.meta.order

    def do_step(self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None) -> np.ndarray:
        """Return the state after one step; ``x`` is left untouched."""
        alg = self.algebra
        y = alg.asarray(x)
        half = 0.5 * dt

        k1 = alg.asarray(system(t, y)) if dxdt is None else alg.asarray(dxdt)
        k2 = alg.asarray(system(t + half, alg.scale_sum(y, (half, k1))))
        k3 = alg.asarray(system(t + half, alg.scale_sum(y, (half, k2))))
        k4 = alg.asarray(system(t + dt, alg.scale_sum(y, (dt, k3))))

        return alg.scale_sum(
            y,
            (dt / 6.0, k1),
            (dt / 3.0, k2),
            (dt / 3.0, k3),
            (dt / 6.0, k4),
        )
