# src/odeadapt/runtime/jit.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable
import warnings

# numba is optional: every kernel in the package has a plain Python body and
# is only compiled when a caller asks for it and numba imports cleanly.

__all__ = ["JittedCallable", "jit_compile", "numba_available", "njit"]


@dataclass(frozen=True)
class JittedCallable:
    """A numeric kernel plus a flag telling whether numba compiled it."""
    fn: Callable
    jitted: bool
    component: str | None = None

    def __call__(self, *args):
        return self.fn(*args)


try:
    from numba import njit
    _NUMBA_OK = True
except Exception:
    _NUMBA_OK = False
    njit = None  # type: ignore


def numba_available() -> bool:
    return _NUMBA_OK


def jit_compile(fn: Callable, *, jit: bool = True, component: str | None = None) -> JittedCallable:
    """
    Compile a loop kernel with numba when requested.

    jit=False keeps ``fn`` as is. jit=True without numba installed emits a
    RuntimeWarning and keeps ``fn``; numba is never required for correct
    results, only for speed. A numba compile failure is not hidden: it is
    re-raised as RuntimeError naming ``component``.

    Args:
        fn: Kernel over float64 arrays and scalars (no Python objects).
        jit: Compile with numba.
        component: Label for warnings and error messages.
    """
    label = f" '{component}'" if component else ""
    if not jit:
        return JittedCallable(fn=fn, jitted=False, component=component)

    if not _NUMBA_OK:
        warnings.warn(
            f"numba is not installed; kernel{label} runs as plain Python. "
            "Install numba to compile it: pip install numba",
            RuntimeWarning,
            stacklevel=3,
        )
        return JittedCallable(fn=fn, jitted=False, component=component)

    try:
        compiled = njit(cache=False)(fn)
    except Exception as e:
        raise RuntimeError(
            f"numba could not compile kernel{label}: {type(e).__name__}: {e}"
        ) from e
    return JittedCallable(fn=compiled, jitted=True, component=component)
