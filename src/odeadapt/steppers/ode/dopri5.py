# src/odeadapt/steppers/ode/dopri5.py
"""
Dormand-Prince 5(4) embedded stepper.

5th-order solution with embedded 4th-order error estimate. The 7th stage is
f(t + dt, y_{n+1}) (first-same-as-last), so an accepted step hands its last
stage to the next step and only 6 RHS evaluations are paid per step.

The stepper itself does not adapt dt; wrap it in ControlledStepper (and
DenseOutputStepper) for error control.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any
import numpy as np

from ..base import EmbeddedStep, StepperCaps, StepperMeta
from ..registry import register
from odeadapt.algebra import NumpyAlgebra, default_algebra

if TYPE_CHECKING:
    from ..base import System

__all__ = ["DormandPrince5"]


# Butcher tableau for DOPRI5(4)
C = np.array([0.0, 1.0/5.0, 3.0/10.0, 4.0/5.0, 8.0/9.0, 1.0])
A = (
    (),
    (1.0/5.0,),
    (3.0/40.0, 9.0/40.0),
    (44.0/45.0, -56.0/15.0, 32.0/9.0),
    (19372.0/6561.0, -25360.0/2187.0, 64448.0/6561.0, -212.0/729.0),
    (9017.0/3168.0, -355.0/33.0, 46732.0/5247.0, 49.0/176.0, -5103.0/18656.0),
)
# 5th order weights (b2 = 0)
B = np.array([35.0/384.0, 0.0, 500.0/1113.0, 125.0/192.0, -2187.0/6784.0, 11.0/84.0])
# b - b* over the 7 FSAL stages (error estimate)
E = np.array([
    71.0/57600.0, 0.0, -71.0/16695.0, 71.0/1920.0,
    -17253.0/339200.0, 22.0/525.0, -1.0/40.0,
])
# Continuous extension: y(t + theta*dt) = y + dt * sum_j K_j * (P[j] . [theta, theta^2, theta^3, theta^4])
P = np.array([
    [1.0, -8048581381.0/2820520608.0, 8663915743.0/2820520608.0, -12715105075.0/11282082432.0],
    [0.0, 0.0, 0.0, 0.0],
    [0.0, 131558114200.0/32700410799.0, -68118460800.0/10900136933.0, 87487479700.0/32700410799.0],
    [0.0, -1754552775.0/470086768.0, 14199869525.0/1410260304.0, -10690763975.0/1880347072.0],
    [0.0, 127303824393.0/49829197408.0, -318862633887.0/49829197408.0, 701980252875.0/199316789632.0],
    [0.0, -282668133.0/205662961.0, 2019193451.0/616988883.0, -1453857185.0/822651844.0],
    [0.0, 40617522.0/29380423.0, -110615467.0/29380423.0, 69997945.0/29380423.0],
])


@register
class DormandPrince5:
    """
    Dormand-Prince RK5(4): 5th-order method with embedded 4th-order error estimate.

    FSAL, native 4th-order dense output.
    """
    meta = StepperMeta(
        name="dopri5",
        time_control="adaptive",
        family="runge-kutta",
        order=5,
        stepper_order=5,
        error_order=4,
        aliases=("rk45", "dormand_prince", "runge_kutta_dopri5"),
        caps=StepperCaps(dense_output=True, fsal=True, embedded_error=True),
    )

    def __init__(self, algebra: NumpyAlgebra | None = None):
        self.algebra = algebra or default_algebra()

    @property
    def order(self) -> int:
        return self.meta.order

    def step_with_error(
        self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None
    ) -> EmbeddedStep:
        """
        One DOPRI5 step from (t, x) with size dt.

        Args:
            dxdt: f(t, x) if already known (FSAL reuse); evaluated otherwise.

        Returns:
            EmbeddedStep with the 5th-order state, the error estimate,
            f(t + dt, x_new) and all 7 stages (for dense output).
        """
        alg = self.algebra
        y = alg.asarray(x)
        k = [alg.asarray(system(t, y)) if dxdt is None else alg.asarray(dxdt)]

        for i in range(1, 6):
            y_stage = alg.scale_sum(y, *((dt * a, k[j]) for j, a in enumerate(A[i])))
            k.append(alg.asarray(system(t + C[i] * dt, y_stage)))

        x_new = alg.scale_sum(y, *((dt * b, k[j]) for j, b in enumerate(B)))

        # Stage 7: FSAL derivative at the new point
        k.append(alg.asarray(system(t + dt, x_new)))

        x_err = dt * alg.combine(E, k)
        return EmbeddedStep(x=x_new, x_err=x_err, dxdt=k[6], stages=tuple(k))

    def interpolate(self, theta: float, x_old: Any, dt: float, stages: tuple) -> np.ndarray:
        """
        State at t_old + theta*dt, 0 <= theta <= 1, from the stages of an accepted step.
        theta=0 reproduces x_old and theta=1 the accepted state (up to rounding).
        """
        alg = self.algebra
        powers = np.cumprod(np.full(P.shape[1], theta))
        weights = P @ powers
        return alg.scale_sum(x_old, *((dt * w, kj) for w, kj in zip(weights, stages)))
