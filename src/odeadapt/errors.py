# src/odeadapt/errors.py
from __future__ import annotations

__all__ = [
    "OdeAdaptError",
    "ConfigError",
    "PreconditionError",
    "StepperNotInitializedError",
    "HistoryMismatchError",
    "DenseOutputRangeError",
    "IntegrationError",
    "StepSizeUnderflowError",
    "StepAdjustmentError",
]


class OdeAdaptError(Exception):
    """Base error for the odeadapt package."""


class ConfigError(OdeAdaptError, ValueError):
    """Raised when a stepper or controller is configured with invalid values."""
    def __init__(self, message: str):
        super().__init__(message)


class PreconditionError(OdeAdaptError):
    """
    Raised when an operation is called in a state that does not allow it.
    Recoverable: the caller can re-initialize or re-query correctly.
    """


class StepperNotInitializedError(PreconditionError):
    """Raised when stepping a stepper whose history/interval is not set up yet."""
    def __init__(self, name: str, have: int, need: int):
        self.name = name
        self.have = have
        self.need = need
        msg = (
            f"{name}: stepper is not initialized "
            f"({have} of {need} history samples). Call initialize() first."
        )
        super().__init__(msg)


class HistoryMismatchError(PreconditionError):
    """Raised when the time handed to a multistep stepper does not continue its history."""
    def __init__(self, name: str, t: float, t_history: float):
        self.name = name
        self.t = t
        self.t_history = t_history
        msg = f"{name}: step requested at t={t!r} but history ends at t={t_history!r}.\n"
        msg += "Re-initialize the stepper after changing time or state externally."
        super().__init__(msg)


class DenseOutputRangeError(PreconditionError):
    """Raised when a dense-output query lies outside the last accepted interval."""
    def __init__(self, t: float, t_old: float, t_new: float):
        self.t = t
        self.t_old = t_old
        self.t_new = t_new
        msg = f"Dense output requested at t={t!r}, outside the last step [{t_old!r}, {t_new!r}]."
        super().__init__(msg)


class IntegrationError(OdeAdaptError, RuntimeError):
    """Fatal failure of the current integration run."""


class StepSizeUnderflowError(IntegrationError):
    """Raised when repeated step rejections drive dt below what time can resolve."""
    def __init__(self, t: float, dt: float, error: float | None = None):
        self.t = t
        self.dt = dt
        self.error = error
        msg = f"Step size underflow at t={t!r}: dt={dt!r}"
        if error is not None:
            msg += f" (last scaled error {error:.3e})"
        super().__init__(msg)


class StepAdjustmentError(IntegrationError):
    """Raised when no acceptable step size was found within the allowed trials."""
    def __init__(self, t: float, trials: int):
        self.t = t
        self.trials = trials
        msg = (
            f"Max number of step trials exceeded ({trials}) at t={t!r}. "
            "A new step size was not found."
        )
        super().__init__(msg)
