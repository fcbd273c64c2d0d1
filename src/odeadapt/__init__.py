# src/odeadapt/__init__.py
from __future__ import annotations
from typing import Any

# Re-export frozen constants/types for stable imports
from odeadapt.runtime.status import StepStatus, SUCCESS, FAIL
from .errors import (
    OdeAdaptError, ConfigError, PreconditionError, StepperNotInitializedError,
    HistoryMismatchError, DenseOutputRangeError, IntegrationError,
    StepSizeUnderflowError, StepAdjustmentError,
)
from .algebra import NumpyAlgebra, default_algebra

from .steppers import (
    StepperCaps, StepperMeta, StepperInfo, EmbeddedStep,
    register, get_stepper, make_stepper, registry, list_steppers,
)
from .steppers.ode.rk4 import RungeKutta4
from .steppers.ode.dopri5 import DormandPrince5
from .steppers.ode.cash_karp54 import CashKarp54
from .steppers.ode.adams_bashforth import AdamsBashforth

from .control import ErrorChecker, ControlledStepper, StepTrial, DenseOutputStepper
from .config import ControllerConfig, IntegratorConfig, load_config, build_stepper
from .runtime.integrate import integrate_adaptive, integrate_const, integrate_times, integrate_n_steps
from .runtime.results import TrajectoryRecorder

__version__ = "0.1.0"

__all__ = [
    # Factories
    "make_controlled", "make_dense_output",
    # Steppers
    "RungeKutta4", "DormandPrince5", "CashKarp54", "AdamsBashforth",
    "ErrorChecker", "ControlledStepper", "StepTrial", "DenseOutputStepper",
    # Drivers
    "integrate_adaptive", "integrate_const", "integrate_times", "integrate_n_steps",
    "TrajectoryRecorder",
    # Config
    "ControllerConfig", "IntegratorConfig", "load_config", "build_stepper",
    # Status codes
    "StepStatus", "SUCCESS", "FAIL",
    # Errors
    "OdeAdaptError", "ConfigError", "PreconditionError", "StepperNotInitializedError",
    "HistoryMismatchError", "DenseOutputRangeError", "IntegrationError",
    "StepSizeUnderflowError", "StepAdjustmentError",
    # Algebra
    "NumpyAlgebra", "default_algebra",
    # Stepper registry
    "StepperCaps", "StepperMeta", "StepperInfo", "EmbeddedStep",
    "register", "get_stepper", "make_stepper", "registry", "list_steppers",
]


def _resolve_stepper(stepper: Any, algebra: NumpyAlgebra | None):
    if isinstance(stepper, str):
        options = {} if algebra is None else {"algebra": algebra}
        return make_stepper(stepper, **options)
    return stepper


def make_controlled(
    atol: float,
    rtol: float,
    stepper: Any = "dopri5",
    max_dt: float | None = None,
    *,
    a_x: float = 1.0,
    a_dxdt: float = 0.0,
    max_trials: int = 500,
    min_dt: float | None = None,
    algebra: NumpyAlgebra | None = None,
) -> ControlledStepper:
    """Build a controlled stepper around ``stepper`` (an instance or a registered name).

    Parameters:
        atol, rtol: Absolute and relative tolerances (> 0).
        stepper: Embedded stepper instance or name, e.g. ``"dopri5"`` or ``"cash_karp54"``.
        max_dt: Optional step-size ceiling (None or 0 = unlimited).
        a_x, a_dxdt: Weights of the state and derivative in the relative scale.
        max_trials: Rejections allowed per step before giving up.
        min_dt: Smallest step size tried before raising StepSizeUnderflowError.
        algebra: State algebra; defaults to the stepper's.

    Example:
        >>> cs = make_controlled(1e-6, 1e-6, "dopri5", max_dt=0.1)
        >>> x, t, dt = cs.step(lambda t, x: -x, [1.0], 0.0, 0.01)
    """
    base = _resolve_stepper(stepper, algebra)
    checker = ErrorChecker(
        atol=atol, rtol=rtol, a_x=a_x, a_dxdt=a_dxdt, max_dt=max_dt,
        algebra=algebra or getattr(base, "algebra", None),
    )
    return ControlledStepper(base, checker, max_trials=max_trials, min_dt=min_dt)


def make_dense_output(
    atol: float,
    rtol: float,
    stepper: Any = "dopri5",
    max_dt: float | None = None,
    **kwargs: Any,
) -> DenseOutputStepper:
    """Same as make_controlled() wrapped in a DenseOutputStepper."""
    return DenseOutputStepper(make_controlled(atol, rtol, stepper, max_dt, **kwargs))
