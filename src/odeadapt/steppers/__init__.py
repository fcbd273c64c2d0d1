# src/odeadapt/steppers/__init__.py
from .base import StepperCaps, StepperMeta, StepperInfo, EmbeddedStep
from .registry import register, get_stepper, make_stepper, registry, list_steppers

# Import concrete steppers to trigger auto-registration
from .ode import rk4, dopri5, cash_karp54
from .ode import adams_bashforth

__all__ = [
    "StepperCaps", "StepperMeta", "StepperInfo", "EmbeddedStep",
    "register", "get_stepper", "make_stepper", "registry", "list_steppers",
]
