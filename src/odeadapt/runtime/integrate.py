# src/odeadapt/runtime/integrate.py
"""
Integration drivers.

Each driver takes any supported stepper and dispatches on its kind:

  - DenseOutputStepper: steps freely, observes through calc_state().
  - ControlledStepper:  adaptive steps, the last one shortened to land on the
                        requested time.
  - multistep:          self-started with initialize(), then do_step().
  - fixed:              plain do_step() (or step_with_error().x for an
                        embedded stepper used without control).

All drivers integrate forward in time, call ``observer(t, x)`` (starting at
t0) and write the final state back into ``x``.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, Callable, Sequence
import math

import numpy as np

from odeadapt.algebra import default_algebra
from odeadapt.control.controlled import ControlledStepper
from odeadapt.control.dense_output import DenseOutputStepper

if TYPE_CHECKING:
    from odeadapt.steppers.base import ErrorStepper, FixedStepper, MultistepStepper, Observer, System

__all__ = [
    "integrate_adaptive",
    "integrate_const",
    "integrate_times",
    "integrate_n_steps",
    "stepper_kind",
]

_EPS = float(np.finfo(np.float64).eps)
_STEP_SLACK = 1e-9


def _less(t: float, t_end: float) -> bool:
    """t < t_end beyond rounding noise."""
    return t_end - t > _EPS * max(1.0, abs(t_end))


def _less_eq(t: float, t_end: float) -> bool:
    """t <= t_end up to rounding noise."""
    return t - t_end <= _EPS * max(1.0, abs(t_end))


def _reaches(t: float, dt: float, t_end: float) -> bool:
    """True if a step of dt from t gets to t_end (leftovers below 1e-9*dt are absorbed)."""
    return t + dt * (1.0 + _STEP_SLACK) >= t_end


def _noop(t: float, x: Any) -> None:
    return None


def stepper_kind(stepper: Any) -> str:
    """One of 'dense', 'controlled', 'multistep', 'fixed', 'embedded'."""
    if isinstance(stepper, DenseOutputStepper):
        return "dense"
    if isinstance(stepper, ControlledStepper):
        return "controlled"
    meta = getattr(stepper, "meta", None)
    if meta is None:
        raise TypeError(f"Object of type {type(stepper).__name__} is not a stepper (no meta)")
    if meta.time_control == "multistep":
        return "multistep"
    if callable(getattr(stepper, "do_step", None)):
        return "fixed"
    if callable(getattr(stepper, "step_with_error", None)):
        return "embedded"
    raise TypeError(f"Stepper '{meta.name}' has neither do_step() nor step_with_error()")


def _check_span(t0: float, t1: float, dt: float) -> None:
    if not dt > 0.0:
        raise ValueError(f"dt must be positive; got {dt!r}")
    if t1 < t0:
        raise ValueError(f"Only forward integration is supported; got t0={t0!r} > t1={t1!r}")


def _algebra(stepper: Any):
    return getattr(stepper, "algebra", None) or default_algebra()


def _single_step(stepper: FixedStepper | ErrorStepper, kind: str) -> Callable:
    if kind == "fixed":
        return stepper.do_step
    return lambda system, x, t, dt: stepper.step_with_error(system, x, t, dt).x


def _grid_count(t0: float, t1: float, dt: float) -> int:
    n = int(math.floor((t1 - t0) / dt))
    if _less_eq(t0 + (n + 1) * dt, t1):
        n += 1
    while n > 0 and not _less_eq(t0 + n * dt, t1):
        n -= 1
    return n


# ------------------------------- controlled ---------------------------------

def _controlled_to(stepper: ControlledStepper, system, x, t, t_end, dt, observer=None):
    """Adaptive steps from t to t_end; returns (x, t, dt_suggested, n_steps)."""
    n = 0
    while _less(t, t_end):
        last = not _less(t + dt, t_end)
        h = t_end - t if last else dt
        x, t_new, dt_next = stepper.step(system, x, t, h)
        n += 1
        if last and t_new == t + h:
            # landed on t_end; the shortened step says nothing about the next one
            t_new = t_end
            dt_next = max(dt_next, dt)
        t, dt = t_new, dt_next
        if observer is not None:
            observer(t, x)
    return x, t, dt, n


# ------------------------------- multistep ----------------------------------

def _multistep_grid(stepper: MultistepStepper, system, x, t0, dt, n_grid, observer):
    """Self-start and step on the t0 + i*dt grid; ``x`` is advanced in place."""
    if n_grid == 0:
        return 0, t0
    need = stepper.order - 1
    if n_grid < need:
        raise ValueError(
            f"{stepper.meta.name} of order {stepper.order} needs at least {need} steps "
            f"to start; the interval only holds {n_grid}"
        )
    t = stepper.initialize(system, x, t0, dt, observer=observer)
    n_steps = need
    for _ in range(need, n_grid):
        t = stepper.do_step(system, x, t, dt)
        n_steps += 1
        observer(t, x)
    return n_steps, t


def _multistep_times(stepper: MultistepStepper, system, x, ts, dt, observer):
    """Step through ``ts`` (ascending), landing exactly on each; returns the step count."""
    n_steps = 0
    t = ts[0]
    pending = ts[1:]
    while pending and not _less(ts[0], pending[0]):
        observer(pending.pop(0), x)
    if pending:
        # start-up must not jump over the first requested time
        dt_init = min(dt, (pending[0] - ts[0]) / (stepper.order - 1))
        t = stepper.initialize(system, x, ts[0], dt_init)
        n_steps = stepper.order - 1
        if math.isclose(t, pending[0], rel_tol=1e-12, abs_tol=1e-15):
            t = pending[0]
    for t_target in pending:
        while _less(t, t_target):
            last = _reaches(t, dt, t_target)
            h = t_target - t if last else dt
            t = stepper.do_step(system, x, t, h)
            if last:
                t = t_target
            n_steps += 1
        observer(t_target, x)
    return n_steps


# ------------------------------- drivers ------------------------------------

def integrate_adaptive(
    stepper: Any,
    system: System,
    x: Any,
    t0: float,
    t1: float,
    dt: float,
    observer: Observer | None = None,
) -> int:
    """
    Integrate from t0 to t1 observing after every step.

    For controlled and dense-output steppers the steps are adaptive; other
    steppers take constant steps of ``dt`` (same as integrate_const).

    Returns:
        Number of accepted steps.
    """
    _check_span(t0, t1, dt)
    obs = observer if observer is not None else _noop
    kind = stepper_kind(stepper)
    alg = _algebra(stepper)

    if kind == "controlled":
        x_cur = alg.copy(x)
        obs(t0, x_cur)
        x_cur, _, _, n = _controlled_to(stepper, system, x_cur, t0, t1, dt, obs)
        alg.assign(x, x_cur)
        return n

    if kind == "dense":
        n = 0
        stepper.initialize(x, t0, dt)
        obs(t0, stepper.current_state)
        while _less(stepper.current_time, t1):
            while _less_eq(stepper.current_time + stepper.current_time_step, t1):
                stepper.do_step(system)
                n += 1
                obs(stepper.current_time, stepper.current_state)
                if not _less(stepper.current_time, t1):
                    break
            if _less(stepper.current_time, t1):
                stepper.initialize(stepper.current_state, stepper.current_time, t1 - stepper.current_time)
        alg.assign(x, stepper.current_state)
        return n

    return integrate_const(stepper, system, x, t0, t1, dt, observer)


def integrate_const(
    stepper: Any,
    system: System,
    x: Any,
    t0: float,
    t1: float,
    dt: float,
    observer: Observer | None = None,
) -> int:
    """
    Integrate from t0 to t1 observing at t0 + i*dt for every grid point <= t1.

    Returns:
        Number of steps taken (for adaptive steppers this can differ from the
        number of grid points).
    """
    _check_span(t0, t1, dt)
    n_grid = _grid_count(t0, t1, dt)
    n, _ = _integrate_grid(stepper, system, x, t0, dt, n_grid, observer)
    return n


def integrate_n_steps(
    stepper: Any,
    system: System,
    x: Any,
    t0: float,
    dt: float,
    n: int,
    observer: Observer | None = None,
) -> float:
    """
    Integrate ``n`` intervals of size ``dt`` observing at each grid point.

    Returns:
        Final time ``t0 + n*dt``.
    """
    if n < 0:
        raise ValueError(f"n must be non-negative; got {n}")
    _check_span(t0, t0, dt)
    _, t_end = _integrate_grid(stepper, system, x, t0, dt, int(n), observer)
    return t_end


def _integrate_grid(stepper, system, x, t0, dt, n_grid, observer):
    obs = observer if observer is not None else _noop
    kind = stepper_kind(stepper)
    alg = _algebra(stepper)
    n_steps = 0

    if kind == "dense":
        stepper.initialize(x, t0, dt)
        obs(t0, stepper.current_state)
        x_last = alg.copy(stepper.current_state)
        t_last = t0
        for i in range(1, n_grid + 1):
            t_target = t0 + i * dt
            while stepper.current_time < t_target:
                stepper.do_step(system)
                n_steps += 1
            x_last = stepper.calc_state(t_target)
            t_last = t_target
            obs(t_target, x_last)
        alg.assign(x, x_last)
        return n_steps, t_last

    x_cur = alg.copy(x)
    obs(t0, x_cur)

    if kind == "controlled":
        t = t0
        dt_ctrl = dt
        for i in range(1, n_grid + 1):
            t_target = t0 + i * dt
            x_cur, t, dt_ctrl, k = _controlled_to(stepper, system, x_cur, t, t_target, dt_ctrl)
            n_steps += k
            t = t_target
            obs(t, x_cur)
        alg.assign(x, x_cur)
        return n_steps, t

    if kind == "multistep":
        n_steps, t = _multistep_grid(stepper, system, x_cur, t0, dt, n_grid, obs)
        alg.assign(x, x_cur)
        return n_steps, t

    step = _single_step(stepper, kind)
    t = t0
    for i in range(1, n_grid + 1):
        x_cur = step(system, x_cur, t, dt)
        t = t0 + i * dt
        n_steps += 1
        obs(t, x_cur)
    alg.assign(x, x_cur)
    return n_steps, t


def integrate_times(
    stepper: Any,
    system: System,
    x: Any,
    times: Sequence[float],
    dt: float,
    observer: Observer | None = None,
) -> int:
    """
    Integrate through the ascending ``times`` observing exactly at each of them.

    ``times[0]`` is the start time. Returns the number of steps taken.
    """
    ts = [float(t) for t in times]
    if not ts:
        return 0
    if any(b < a for a, b in zip(ts, ts[1:])):
        raise ValueError("times must be sorted in ascending order")
    _check_span(ts[0], ts[-1], dt)
    obs = observer if observer is not None else _noop
    kind = stepper_kind(stepper)
    alg = _algebra(stepper)
    n_steps = 0

    if kind == "dense":
        stepper.initialize(x, ts[0], dt)
        obs(ts[0], stepper.current_state)
        x_last = alg.copy(stepper.current_state)
        for t_target in ts[1:]:
            while stepper.current_time < t_target:
                stepper.do_step(system)
                n_steps += 1
            x_last = stepper.calc_state(t_target) if stepper.has_step else alg.copy(stepper.current_state)
            obs(t_target, x_last)
        alg.assign(x, x_last)
        return n_steps

    x_cur = alg.copy(x)
    obs(ts[0], x_cur)
    t = ts[0]

    if kind == "controlled":
        dt_ctrl = dt
        for t_target in ts[1:]:
            x_cur, _, dt_ctrl, k = _controlled_to(stepper, system, x_cur, t, t_target, dt_ctrl)
            n_steps += k
            t = t_target
            obs(t, x_cur)
        alg.assign(x, x_cur)
        return n_steps

    if kind == "multistep":
        n_steps = _multistep_times(stepper, system, x_cur, ts, dt, obs)
        alg.assign(x, x_cur)
        return n_steps

    step = _single_step(stepper, kind)
    for t_target in ts[1:]:
        while _less(t, t_target):
            last = _reaches(t, dt, t_target)
            h = t_target - t if last else dt
            x_cur = step(system, x_cur, t, h)
            t = t_target if last else t + h
            n_steps += 1
        obs(t_target, x_cur)
    alg.assign(x, x_cur)
    return n_steps
