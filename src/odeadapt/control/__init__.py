# src/odeadapt/control/__init__.py
"""Step-size control: error checker, controlled stepper, dense output."""
from .error_checker import ErrorChecker
from .controlled import ControlledStepper, StepTrial
from .dense_output import DenseOutputStepper

__all__ = ["ErrorChecker", "ControlledStepper", "StepTrial", "DenseOutputStepper"]
