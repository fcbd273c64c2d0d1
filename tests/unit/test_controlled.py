# tests/unit/test_controlled.py
"""
Unit tests: ControlledStepper accept/reject logic.

Tests verify:
- accepted trials advance t by the (clamped) dt and suggest a new dt
- rejected trials return the caller's state and time untouched
- step() retries until accepted and respects the ceiling
- non-finite trials are rejected with the minimum decrease factor
- underflow and max-trials failures raise IntegrationError subclasses
- FSAL derivatives are reused between consecutive steps
"""
from __future__ import annotations
import numpy as np
import pytest

from odeadapt import (
    CashKarp54, ConfigError, ControlledStepper, DormandPrince5, ErrorChecker,
    IntegrationError, RungeKutta4, StepAdjustmentError, StepSizeUnderflowError,
    StepStatus, make_controlled,
)
from odeadapt.steppers.base import EmbeddedStep, StepperCaps, StepperMeta


def decay(t, x):
    return -x


class CountingSystem:
    def __init__(self, fn):
        self.fn = fn
        self.calls = 0

    def __call__(self, t, x):
        self.calls += 1
        return self.fn(t, x)


class FixedErrorStepper:
    """Fake embedded stepper returning a prescribed error estimate."""
    meta = StepperMeta(
        name="fixed_error",
        time_control="adaptive",
        order=5,
        stepper_order=5,
        error_order=4,
        caps=StepperCaps(embedded_error=True),
    )

    def __init__(self, err_value):
        self.err_value = err_value

    @property
    def order(self):
        return 5

    def step_with_error(self, system, x, t, dt, dxdt=None):
        x = np.asarray(x, dtype=float)
        return EmbeddedStep(x=x + dt, x_err=np.full_like(x, self.err_value))


def test_accepted_trial():
    cs = make_controlled(1e-6, 1e-6, "dopri5")
    x0 = np.array([1.0])
    trial = cs.try_step(decay, x0, 0.0, 1e-3)
    assert trial.status == StepStatus.SUCCESS
    assert trial.accepted
    assert trial.t == 1e-3
    assert trial.dt >= 1e-3
    assert trial.x[0] == pytest.approx(np.exp(-1e-3), rel=1e-12)
    assert x0[0] == 1.0


def test_rejected_trial_keeps_state():
    cs = make_controlled(1e-10, 1e-10, "dopri5")
    x0 = np.array([1.0, 0.0])
    osc = lambda t, x: np.array([x[1], -100.0 * x[0]])
    trial = cs.try_step(osc, x0, 0.5, 1.0)
    assert trial.status == StepStatus.FAIL
    assert trial.x is x0
    assert trial.t == 0.5
    assert 0.0 < trial.dt < 1.0
    assert trial.error > 1.0
    np.testing.assert_array_equal(x0, [1.0, 0.0])


def test_step_retries_until_accepted():
    cs = make_controlled(1e-8, 1e-8, "cash_karp54")
    osc = lambda t, x: np.array([x[1], -100.0 * x[0]])
    x, t, dt = cs.step(osc, [1.0, 0.0], 0.0, 1.0)
    assert 0.0 < t < 1.0
    assert cs.rejected_steps >= 1
    assert cs.accepted_steps == 1
    assert x.shape == (2,)


def test_ceiling_applies_before_trial():
    cs = make_controlled(1e-3, 1e-3, "dopri5", max_dt=0.01)
    trial = cs.try_step(decay, [1.0], 0.0, 0.5)
    assert trial.accepted
    assert trial.t == 0.01
    assert trial.dt <= 0.01


def test_accept_uses_increase_rule():
    stepper = FixedErrorStepper(0.0)
    cs = ControlledStepper(stepper, ErrorChecker(atol=1.0, rtol=1.0))
    trial = cs.try_step(decay, [0.0], 0.0, 0.1)
    assert trial.accepted
    assert trial.dt == pytest.approx(0.1 * 0.9 * 5.0)


def test_reject_uses_decrease_rule():
    stepper = FixedErrorStepper(1.5)
    cs = ControlledStepper(stepper, ErrorChecker(atol=1.0, rtol=1e-12))
    trial = cs.try_step(decay, [0.0], 0.0, 0.1)
    assert trial.status == StepStatus.FAIL
    assert trial.dt == pytest.approx(0.1 * 0.9 * 1.5 ** (-1.0 / 3.0))


def test_non_finite_trial_rejected():
    stepper = FixedErrorStepper(np.nan)
    cs = ControlledStepper(stepper, ErrorChecker(atol=1.0, rtol=1.0))
    trial = cs.try_step(decay, [0.0], 0.0, 0.1)
    assert trial.status == StepStatus.FAIL
    assert trial.error == np.inf
    assert trial.dt == pytest.approx(0.02)


def test_step_adjustment_error():
    cs = ControlledStepper(FixedErrorStepper(10.0), ErrorChecker(atol=1.0, rtol=1e-12), max_trials=3)
    with pytest.raises(StepAdjustmentError) as exc_info:
        cs.step(decay, [0.0], 0.0, 0.1)
    assert exc_info.value.trials == 3
    assert isinstance(exc_info.value, IntegrationError)


def test_step_size_underflow_min_dt():
    cs = ControlledStepper(FixedErrorStepper(10.0), ErrorChecker(atol=1.0, rtol=1e-12), min_dt=1e-3)
    with pytest.raises(StepSizeUnderflowError) as exc_info:
        cs.step(decay, [0.0], 0.0, 0.1)
    assert exc_info.value.dt < 1e-3
    assert exc_info.value.t == 0.0


def test_step_size_underflow_time_resolution():
    cs = ControlledStepper(FixedErrorStepper(1e6), ErrorChecker(atol=1.0, rtol=1e-12), max_trials=10_000)
    with pytest.raises(StepSizeUnderflowError):
        cs.step(decay, [0.0], 1.0e6, 1.0)


def test_fsal_derivative_reused():
    cs = make_controlled(1e-6, 1e-6, "dopri5")
    sys = CountingSystem(decay)
    x, t, dt = cs.step(sys, np.array([1.0]), 0.0, 0.01)
    first = sys.calls
    assert first == 7
    cs.step(sys, x, t, 0.01)
    # FSAL: the 7th stage of the previous step is the first stage of this one
    assert sys.calls - first == 6


def test_fsal_cache_ignored_for_other_state():
    cs = make_controlled(1e-6, 1e-6, "dopri5")
    sys = CountingSystem(decay)
    x, t, dt = cs.step(sys, np.array([1.0]), 0.0, 0.01)
    before = sys.calls
    cs.step(sys, x + 1.0, t, 0.01)
    assert sys.calls - before == 7


def test_reset_drops_cache():
    cs = make_controlled(1e-6, 1e-6, "dopri5")
    sys = CountingSystem(decay)
    x, t, dt = cs.step(sys, np.array([1.0]), 0.0, 0.01)
    cs.reset()
    before = sys.calls
    cs.step(sys, x, t, 0.01)
    assert sys.calls - before == 7


def test_orders_exposed():
    cs = ControlledStepper(CashKarp54())
    assert cs.order == 5
    assert cs.stepper_order == 5
    assert cs.error_order == 4
    assert cs.max_dt is None
    assert cs.checker.atol == 1e-6


def test_requires_embedded_stepper():
    with pytest.raises(ConfigError):
        ControlledStepper(RungeKutta4())


def test_invalid_max_trials():
    with pytest.raises(ConfigError):
        ControlledStepper(DormandPrince5(), max_trials=0)


def test_step_rejects_non_positive_dt():
    cs = make_controlled(1e-6, 1e-6)
    with pytest.raises(ValueError):
        cs.step(decay, [1.0], 0.0, 0.0)
