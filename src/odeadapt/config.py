# src/odeadapt/config.py
"""
Runtime configuration for steppers and step-size controllers.

Configuration lives in frozen dataclasses. It can be built in code or read
from TOML, either from a file or from an inline string prefixed with
``inline:``::

    [stepper]
    name = "dopri5"
    dense_output = true

    [control]
    atol = 1e-6
    rtol = 1e-6
    max_dt = 0.01

``[stepper].order`` is only used by multistep steppers.
"""
from __future__ import annotations
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import math
import re
import warnings

try:  # pragma: no cover - Python >=3.11
    import tomllib  # type: ignore
except Exception:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from odeadapt.errors import ConfigError

__all__ = [
    "ControllerConfig",
    "IntegratorConfig",
    "load_config",
    "parse_config",
    "build_stepper",
]

_INLINE_PREFIX = "inline:"


@dataclass(frozen=True)
class ControllerConfig:
    """Runtime configuration for the error checker and controlled stepper."""
    atol: float = 1e-6
    rtol: float = 1e-6
    a_x: float = 1.0
    a_dxdt: float = 0.0
    max_dt: Optional[float] = None   # None or 0 -> unlimited
    max_trials: int = 500
    min_dt: Optional[float] = None   # None -> only the t + dt == t underflow check

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in ("atol", "rtol"):
            value = getattr(self, name)
            if not _is_number(value) or not math.isfinite(value) or value <= 0.0:
                raise ConfigError(f"{name} must be a positive finite number; got {value!r}")
        for name in ("a_x", "a_dxdt"):
            value = getattr(self, name)
            if not _is_number(value) or value < 0.0:
                raise ConfigError(f"{name} must be a non-negative number; got {value!r}")
        if self.max_dt is not None and (not _is_number(self.max_dt) or self.max_dt < 0.0):
            raise ConfigError(f"max_dt must be None or a non-negative number; got {self.max_dt!r}")
        if self.min_dt is not None and (not _is_number(self.min_dt) or self.min_dt < 0.0):
            raise ConfigError(f"min_dt must be None or a non-negative number; got {self.min_dt!r}")
        if isinstance(self.max_trials, bool) or not isinstance(self.max_trials, int) or self.max_trials < 1:
            raise ConfigError(f"max_trials must be a positive integer; got {self.max_trials!r}")

    @property
    def limited(self) -> bool:
        return bool(self.max_dt)

    def replace(self, **changes: Any) -> "ControllerConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class IntegratorConfig:
    """Which stepper to build and how to control it."""
    stepper: str = "dopri5"
    order: Optional[int] = None
    dense_output: bool = False
    control: ControllerConfig = field(default_factory=ControllerConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ------------------------------- loading ---------------------------------

def load_config(source: str | Path) -> IntegratorConfig:
    """
    Read an IntegratorConfig from a TOML file path or an ``inline:`` string.

    Raises:
        ConfigError: unreadable file, TOML syntax error or invalid values.
    """
    if isinstance(source, str) and source.lstrip().startswith(_INLINE_PREFIX):
        text = source.lstrip()[len(_INLINE_PREFIX):]
        origin = "<inline>"
    else:
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
        origin = str(path)

    try:
        doc = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(_format_toml_error(exc, text, origin)) from exc
    return parse_config(doc)


def parse_config(doc: Mapping[str, Any]) -> IntegratorConfig:
    """Validate a decoded TOML document and turn it into an IntegratorConfig."""
    unknown_tables = sorted(set(doc) - {"stepper", "control"})
    if unknown_tables:
        warnings.warn(
            f"Ignoring unknown config tables: {', '.join(unknown_tables)}",
            UserWarning,
            stacklevel=3,
        )

    stepper_tbl = _table(doc, "stepper")
    control_tbl = _table(doc, "control")

    stepper_keys = {"name", "order", "dense_output"}
    _warn_unknown_keys("stepper", stepper_tbl, stepper_keys)
    control_keys = {f.name for f in fields(ControllerConfig)}
    _warn_unknown_keys("control", control_tbl, control_keys)

    name = stepper_tbl.get("name", IntegratorConfig.stepper)
    if not isinstance(name, str) or not name:
        raise ConfigError("[stepper].name must be a non-empty string")
    order = stepper_tbl.get("order")
    if order is not None and (isinstance(order, bool) or not isinstance(order, int)):
        raise ConfigError(f"[stepper].order must be an integer; got {order!r}")
    dense = stepper_tbl.get("dense_output", False)
    if not isinstance(dense, bool):
        raise ConfigError(f"[stepper].dense_output must be true or false; got {dense!r}")

    control = ControllerConfig(**{k: v for k, v in control_tbl.items() if k in control_keys})
    return IntegratorConfig(stepper=name, order=order, dense_output=dense, control=control)


def _table(doc: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = doc.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _warn_unknown_keys(table: str, tbl: Mapping[str, Any], known: set[str]) -> None:
    extra = sorted(set(tbl) - known)
    if extra:
        warnings.warn(
            f"Ignoring unknown keys in [{table}]: {', '.join(extra)}",
            UserWarning,
            stacklevel=4,
        )


_POS_RE = re.compile(r"at line (\d+), column (\d+)")


def _format_toml_error(exc: Exception, text: str, origin: str) -> str:
    msg = f"Invalid TOML in {origin}: {exc}"
    lineno = getattr(exc, "lineno", None)
    colno = getattr(exc, "colno", None)
    if lineno is None:
        m = _POS_RE.search(str(exc))
        if m is None:
            return msg
        lineno, colno = int(m.group(1)), int(m.group(2))

    lines = text.splitlines()
    if not 1 <= lineno <= len(lines):
        return msg
    out = [msg, ""]
    for i in range(max(1, lineno - 1), lineno + 1):
        marker = ">>>" if i == lineno else "   "
        out.append(f"{marker} {i:4d} | {lines[i - 1]}")
    out.append(" " * (4 + 4 + 3 + max(colno or 1, 1) - 1) + "^")
    return "\n".join(out)


# ------------------------------- building ---------------------------------

def build_stepper(config: IntegratorConfig, *, algebra=None):
    """
    Build the stepper described by ``config``.

    Returns a DenseOutputStepper, ControlledStepper, or for fixed/multistep
    steppers the plain stepper instance.
    """
    from odeadapt.control.controlled import ControlledStepper
    from odeadapt.control.dense_output import DenseOutputStepper
    from odeadapt.control.error_checker import ErrorChecker
    from odeadapt.steppers.registry import get_stepper

    cls = get_stepper(config.stepper)
    options: Dict[str, Any] = {}
    if algebra is not None:
        options["algebra"] = algebra

    if cls.meta.time_control == "multistep":
        if config.order is not None:
            options["order"] = config.order
        return cls(**options)

    if config.order is not None and config.order != cls.meta.order:
        raise ConfigError(
            f"Stepper '{cls.meta.name}' has fixed order {cls.meta.order}; got order={config.order}"
        )
    stepper = cls(**options)
    if cls.meta.time_control == "fixed":
        if config.dense_output:
            raise ConfigError(f"Stepper '{cls.meta.name}' has no error estimate; dense_output needs one")
        return stepper

    checker = ErrorChecker.from_config(config.control, algebra=algebra)
    controlled = ControlledStepper(
        stepper,
        checker,
        max_trials=config.control.max_trials,
        min_dt=config.control.min_dt,
    )
    if config.dense_output:
        return DenseOutputStepper(controlled)
    return controlled
