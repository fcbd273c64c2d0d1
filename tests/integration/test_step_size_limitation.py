# tests/integration/test_step_size_limitation.py
"""
Integration tests: step-size ceiling on the Lorenz system.

Tests verify:
- with max_dt = 0.01 and a loose tolerance, every observed time lies on the
  0.01 grid for controlled DOPRI5, controlled Cash-Karp and dense-output DOPRI5
- the ceiling holds whether the initial dt is at or above it
- without a ceiling the same runs take fewer, larger steps
"""
from __future__ import annotations
import numpy as np
import pytest

from odeadapt import TrajectoryRecorder, integrate_adaptive, make_controlled, make_dense_output

SIGMA = 10.0
R = 28.0
B = 8.0 / 3.0


def lorenz(t, x):
    return np.array([
        SIGMA * (x[1] - x[0]),
        R * x[0] - x[1] - x[0] * x[2],
        -B * x[2] + x[0] * x[1],
    ])


def _run(stepper, dt0):
    x = np.array([10.0, 10.0, 10.0])
    rec = TrajectoryRecorder()
    n = integrate_adaptive(stepper, lorenz, x, 0.0, 1.0, dt0, rec)
    return n, rec, x


CASES = [
    ("controlled dopri5", lambda: make_controlled(1e-2, 1e-2, "dopri5", max_dt=0.01)),
    ("controlled cash_karp54", lambda: make_controlled(1e-2, 1e-2, "cash_karp54", max_dt=0.01)),
    ("dense dopri5", lambda: make_dense_output(1e-2, 1e-2, "dopri5", max_dt=0.01)),
]


@pytest.mark.parametrize("label, factory", CASES, ids=[c[0] for c in CASES])
@pytest.mark.parametrize("dt0", [0.01, 0.1])
def test_observer_times_on_grid(label, factory, dt0):
    n, rec, x = _run(factory(), dt0)
    times = rec.times
    assert n == 100, f"{label}: expected 100 steps, got {n}"
    assert len(times) == 101
    for i, t in enumerate(times):
        assert abs(t - i * 0.01) < 1e-15, f"{label}: t[{i}]={t!r}"
    np.testing.assert_array_equal(rec.states[-1], x)


@pytest.mark.parametrize("label, factory", CASES, ids=[c[0] for c in CASES])
def test_steps_never_exceed_ceiling(label, factory):
    _, rec, _ = _run(factory(), 0.5)
    steps = np.diff(rec.times)
    assert np.all(steps <= 0.01 + 1e-15), label


def test_unlimited_takes_larger_steps():
    n_limited, _, _ = _run(make_controlled(1e-2, 1e-2, "dopri5", max_dt=0.01), 0.01)
    n_free, rec, _ = _run(make_controlled(1e-2, 1e-2, "dopri5"), 0.01)
    assert n_free < n_limited
    assert rec.times[-1] == 1.0
