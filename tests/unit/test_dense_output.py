# tests/unit/test_dense_output.py
"""
Unit tests: DenseOutputStepper.

Tests verify:
- do_step returns the covered interval and advances the current time
- calc_state reproduces the endpoints and interpolates accurately in between
  (native DOPRI5 extension and Hermite fallback for Cash-Karp)
- out-of-range queries and queries before the first step raise
  precondition errors
- the step-size ceiling is applied from initialize() on
"""
from __future__ import annotations
import numpy as np
import pytest

from odeadapt import (
    DenseOutputRangeError, DenseOutputStepper, PreconditionError,
    StepperNotInitializedError, make_controlled, make_dense_output,
)


def rotation(t, x):
    return np.array([x[1], -x[0]])


def exact(t):
    return np.array([np.sin(t), np.cos(t)])


@pytest.mark.parametrize("name", ["dopri5", "cash_karp54"])
def test_interval_and_endpoints(name):
    ds = make_dense_output(1e-8, 1e-8, name)
    ds.initialize(exact(0.0), 0.0, 0.1)
    t_old, t_new = ds.do_step(rotation)
    assert t_old == 0.0
    assert t_new > 0.0
    assert ds.previous_time == t_old
    assert ds.current_time == t_new
    np.testing.assert_allclose(ds.calc_state(t_old), exact(0.0))
    np.testing.assert_allclose(ds.calc_state(t_new), ds.current_state)


@pytest.mark.parametrize("name, tol", [("dopri5", 1e-6), ("cash_karp54", 1e-5)])
def test_interpolation_accuracy(name, tol):
    ds = make_dense_output(1e-9, 1e-9, name)
    ds.initialize(exact(0.0), 0.0, 0.05)
    t = 0.0
    while t < 2.0:
        t_old, t = ds.do_step(rotation)
        for theta in (0.25, 0.5, 0.75):
            tq = t_old + theta * (t - t_old)
            np.testing.assert_allclose(ds.calc_state(tq), exact(tq), atol=tol)


def test_native_extension_used_for_dopri5():
    ds = make_dense_output(1e-6, 1e-6, "dopri5")
    assert ds._native
    ds2 = make_dense_output(1e-6, 1e-6, "cash_karp54")
    assert not ds2._native


def test_out_of_range_query():
    ds = make_dense_output(1e-6, 1e-6, "dopri5")
    ds.initialize(exact(0.0), 0.0, 0.1)
    t_old, t_new = ds.do_step(rotation)
    with pytest.raises(DenseOutputRangeError) as exc_info:
        ds.calc_state(t_new + 0.5)
    assert exc_info.value.t_new == t_new
    with pytest.raises(PreconditionError):
        ds.calc_state(-1e-3)


def test_query_before_first_step():
    ds = make_dense_output(1e-6, 1e-6)
    with pytest.raises(StepperNotInitializedError):
        ds.do_step(rotation)
    ds.initialize([1.0, 0.0], 0.0, 0.1)
    with pytest.raises(StepperNotInitializedError):
        ds.calc_state(0.0)


def test_reinitialize_drops_interval():
    ds = make_dense_output(1e-6, 1e-6)
    ds.initialize(exact(0.0), 0.0, 0.1)
    ds.do_step(rotation)
    ds.initialize(exact(1.0), 1.0, 0.1)
    assert ds.current_time == 1.0
    assert not ds.has_step
    with pytest.raises(StepperNotInitializedError):
        ds.calc_state(1.0)


def test_ceiling_applies_on_initialize():
    ds = make_dense_output(1e-2, 1e-2, "dopri5", max_dt=0.01)
    ds.initialize(exact(0.0), 0.0, 0.1)
    assert ds.current_time_step == 0.01
    for _ in range(5):
        t_old, t_new = ds.do_step(rotation)
        assert t_new - t_old <= 0.01 + 1e-15


def test_initialize_copies_state():
    x0 = np.array([0.0, 1.0])
    ds = make_dense_output(1e-6, 1e-6)
    ds.initialize(x0, 0.0, 0.1)
    ds.do_step(rotation)
    np.testing.assert_array_equal(x0, [0.0, 1.0])


def test_wraps_only_controlled():
    with pytest.raises(TypeError):
        DenseOutputStepper(object())
    ds = DenseOutputStepper(make_controlled(1e-6, 1e-6, "dopri5"))
    assert ds.order == 5
