# src/odeadapt/runtime/status.py
from __future__ import annotations
from enum import IntEnum

__all__ = [
    "StepStatus",
    # int constants
    "SUCCESS", "FAIL",
]


class StepStatus(IntEnum):
    """Outcome of a single controlled trial step."""
    SUCCESS = 0    # trial accepted; state/time advanced, dt holds the suggestion
    FAIL = 1       # trial rejected; state/time untouched, dt holds the retry size

# Plain int constants for callers that compare against ints
SUCCESS: int = int(StepStatus.SUCCESS)
FAIL: int = int(StepStatus.FAIL)


__doc__ = (__doc__ or "") + r"""

CONTROLLED STEP CONTRACT

try_step(system, x, t, dt) -> StepTrial(status, x, t, dt, error)

Rules:
- status == SUCCESS: x is the new state, t = t_in + dt_used, dt is the suggested next step.
- status == FAIL: x is the caller's state object, t is unchanged, dt is the decreased step.
- dt entering a trial is clamped to the configured ceiling before the base stepper runs.
- error is the scaled max-norm of the embedded estimate (<= 1 means accepted), or inf
  when the trial produced non-finite values.
"""
