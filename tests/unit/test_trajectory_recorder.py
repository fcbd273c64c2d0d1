# tests/unit/test_trajectory_recorder.py
"""Unit tests: TrajectoryRecorder storage growth and views."""
from __future__ import annotations
import numpy as np
import pytest

from odeadapt import TrajectoryRecorder


def test_records_copies():
    rec = TrajectoryRecorder(cap=2)
    x = np.array([1.0, 2.0])
    rec(0.0, x)
    x[0] = 99.0
    rec(0.5, x)
    rec(1.0, [3, 4])
    assert len(rec) == 3
    np.testing.assert_array_equal(rec.times, [0.0, 0.5, 1.0])
    np.testing.assert_array_equal(rec.states, [[1.0, 2.0], [99.0, 2.0], [3.0, 4.0]])
    assert rec.states.dtype == np.float64


def test_empty_views():
    rec = TrajectoryRecorder()
    assert rec.times.shape == (0,)
    assert len(rec.states) == 0


def test_matrix_states_and_clear():
    rec = TrajectoryRecorder(cap=1)
    for i in range(5):
        rec(float(i), np.full((2, 2), i))
    assert rec.states.shape == (5, 2, 2)
    rec.clear()
    assert len(rec) == 0


def test_invalid_cap():
    with pytest.raises(ValueError):
        TrajectoryRecorder(cap=0)
