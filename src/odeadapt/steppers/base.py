# src/odeadapt/steppers/base.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, NamedTuple, Optional, Protocol
import numpy as np

__all__ = [
    "TimeCtrl", "System", "Observer",
    "StepperCaps", "StepperMeta", "StepperInfo",
    "EmbeddedStep", "FixedStepper", "ErrorStepper", "MultistepStepper",
]

TimeCtrl = Literal["fixed", "adaptive", "multistep"]

# f(t, x) -> dx/dt
System = Callable[[float, Any], Any]
# observer(t, x) -> None
Observer = Callable[[float, Any], None]


@dataclass(frozen=True)
class StepperCaps:
    """Features a stepper offers beyond its basic step. Unset flags default to False."""
    dense_output: bool = False    # has a native continuous extension (interpolate())
    fsal: bool = False            # last stage equals f at the new point
    embedded_error: bool = False  # step_with_error() returns an error estimate


@dataclass(frozen=True)
class StepperMeta:
    """
    Public metadata for a stepper.

    ``order`` is the formal order of the propagated solution, or None for
    variable-order steppers whose instances carry their own meta. Controllers
    use ``stepper_order`` for growth and ``error_order`` for shrinking.
    """
    name: str
    time_control: TimeCtrl = "fixed"
    family: str = ""
    order: int | None = 1
    stepper_order: int | None = None
    error_order: int | None = None
    aliases: tuple[str, ...] = ()
    caps: StepperCaps = field(default_factory=StepperCaps)

# Alias kept for discoverability helpers
StepperInfo = StepperMeta


class EmbeddedStep(NamedTuple):
    """Result of one embedded step.

    x:       propagated state (higher order solution)
    x_err:   embedded error estimate, same shape as x
    dxdt:    f(t + dt, x) when the method is FSAL, else None
    stages:  stage derivatives kept for dense output (None if not needed)
    """
    x: np.ndarray
    x_err: np.ndarray
    dxdt: Optional[np.ndarray] = None
    stages: Optional[tuple] = None


class FixedStepper(Protocol):
    """Single-step method of fixed order, no error estimate."""

    meta: StepperMeta

    @property
    def order(self) -> int: ...
    def do_step(self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None) -> np.ndarray: ...


class ErrorStepper(Protocol):
    """
    Base stepper contract required by the controlled stepper.

    Implementations MUST:
      - provide ``meta`` with ``stepper_order`` and ``error_order`` set
      - provide ``step_with_error(system, x, t, dt, dxdt=None) -> EmbeddedStep``
        returning the propagated state and an error estimate one order lower
      - never mutate ``x``
    Steppers with ``caps.dense_output`` additionally provide
    ``interpolate(theta, x_old, dt, stages)``.
    """

    meta: StepperMeta

    @property
    def order(self) -> int: ...
    def step_with_error(
        self, system: System, x: Any, t: float, dt: float, dxdt: Any | None = None
    ) -> EmbeddedStep: ...


class MultistepStepper(Protocol):
    """Self-starting multistep method that owns a derivative history."""

    meta: StepperMeta

    @property
    def order(self) -> int: ...
    @property
    def is_initialized(self) -> bool: ...
    def initialize(self, system: System, x: Any, t: float, dt: float, observer: Observer | None = None) -> float: ...
    def do_step(self, system: System, x: Any, t: float, dt: float) -> float: ...
    def reset(self) -> None: ...
