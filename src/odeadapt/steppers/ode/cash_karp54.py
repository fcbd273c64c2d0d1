# src/odeadapt/steppers/ode/cash_karp54.py
"""
Cash-Karp 5(4) embedded stepper.

Six stages, 5th-order propagated solution, 4th-order embedded solution used
for the error estimate. Not FSAL and no native dense output; DenseOutputStepper
falls back to Hermite interpolation for it.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any
import numpy as np

from ..base import EmbeddedStep, StepperCaps, StepperMeta
from ..registry import register
from odeadapt.algebra import NumpyAlgebra, default_algebra

if TYPE_CHECKING:
    from ..base import System

__all__ = ["CashKarp54"]


C = np.array([0.0, 1.0/5.0, 3.0/10.0, 3.0/5.0, 1.0, 7.0/8.0])
A = (
    (),
    (1.0/5.0,),
    (3.0/40.0, 9.0/40.0),
    (3.0/10.0, -9.0/10.0, 6.0/5.0),
    (-11.0/54.0, 5.0/2.0, -70.0/27.0, 35.0/27.0),
    (1631.0/55296.0, 175.0/512.0, 575.0/13824.0, 44275.0/110592.0, 253.0/4096.0),
)
B5 = np.array([37.0/378.0, 0.0, 250.0/621.0, 125.0/594.0, 0.0, 512.0/1771.0])
B4 = np.array([2825.0/27648.0, 0.0, 18575.0/48384.0, 13525.0/55296.0, 277.0/14336.0, 1.0/4.0])
E = B5 - B4


@register
class CashKarp54:
    """Cash-Karp RK5(4): adaptive-capable, order 5, explicit."""
    meta = StepperMeta(
        name="cash_karp54",
        time_control="adaptive",
        family="runge-kutta",
        order=5,
        stepper_order=5,
        error_order=4,
        aliases=("rkck", "runge_kutta_cash_karp54"),
        caps=StepperCaps(dense_output=False, fsal=False, embedded_error=True),
    )

    def __init__(self, algebra: NumpyAlgebra | None = None):
        self.algebra = algebra or default_algebra()

    @property
    def order(self) -> int:
        return self.meta.order

    def step_with_error(
        self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None
    ) -> EmbeddedStep:
        alg = self.algebra
        y = alg.asarray(x)
        k = [alg.asarray(system(t, y)) if dxdt is None else alg.asarray(dxdt)]

        for i in range(1, 6):
            y_stage = alg.scale_sum(y, *((dt * a, k[j]) for j, a in enumerate(A[i])))
            k.append(alg.asarray(system(t + C[i] * dt, y_stage)))

        x_new = alg.scale_sum(y, *((dt * b, kj) for b, kj in zip(B5, k)))
        x_err = dt * alg.combine(E, k)
        return EmbeddedStep(x=x_new, x_err=x_err, dxdt=None, stages=None)
