# tests/unit/test_config.py
"""
Unit tests: configuration dataclasses, TOML loading and build_stepper.

Tests verify:
- ControllerConfig validation rejects bad tolerances, ceilings and trial counts
- load_config reads files and inline strings
- TOML syntax errors become ConfigError with a line marker and caret
- unknown tables/keys produce a UserWarning and are ignored
- build_stepper returns dense, controlled or multistep steppers as configured
"""
from __future__ import annotations
from pathlib import Path

import pytest

from odeadapt import (
    AdamsBashforth, CashKarp54, ConfigError, ControlledStepper, ControllerConfig,
    DenseOutputStepper, IntegratorConfig, RungeKutta4, build_stepper, load_config,
)

# tests/unit/test_config.py
DATA_DIR = Path(__file__).resolve().parents[1] / "data" / "configs"


def test_controller_defaults():
    cfg = ControllerConfig()
    assert cfg.atol == 1e-6
    assert cfg.rtol == 1e-6
    assert cfg.a_x == 1.0
    assert cfg.a_dxdt == 0.0
    assert cfg.max_dt is None
    assert not cfg.limited
    assert cfg.max_trials == 500


def test_controller_replace_validates():
    cfg = ControllerConfig(atol=1e-8)
    cfg2 = cfg.replace(max_dt=0.1)
    assert cfg2.max_dt == 0.1
    assert cfg2.limited
    assert cfg.max_dt is None
    with pytest.raises(ConfigError):
        cfg.replace(rtol=0.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"atol": -1e-6},
        {"rtol": 0.0},
        {"atol": True},
        {"max_dt": -0.5},
        {"min_dt": -1.0},
        {"max_trials": 0},
        {"max_trials": 2.5},
        {"a_dxdt": -0.1},
    ],
)
def test_controller_rejects(kwargs):
    with pytest.raises(ConfigError):
        ControllerConfig(**kwargs)


def test_load_dense_file():
    cfg = load_config(DATA_DIR / "dopri5_dense.toml")
    assert cfg.stepper == "dopri5"
    assert cfg.dense_output is True
    assert cfg.control.atol == 1e-8
    assert cfg.control.rtol == 1e-6
    assert cfg.control.max_dt == 0.05

    st = build_stepper(cfg)
    assert isinstance(st, DenseOutputStepper)
    assert st.max_dt == 0.05
    assert st.controlled.checker.atol == 1e-8


def test_load_controlled_file_with_alias():
    cfg = load_config(str(DATA_DIR / "cash_karp_controlled.toml"))
    assert cfg.stepper == "rkck"
    st = build_stepper(cfg)
    assert isinstance(st, ControlledStepper)
    assert isinstance(st.stepper, CashKarp54)
    assert st.max_trials == 50
    assert st.min_dt == 1e-12
    assert st.checker.config.a_dxdt == 1.0


def test_load_multistep_file():
    cfg = load_config(DATA_DIR / "adams_bashforth.toml")
    st = build_stepper(cfg)
    assert isinstance(st, AdamsBashforth)
    assert st.order == 4


def test_inline_config():
    cfg = load_config(
        """
inline:
[stepper]
name = "rk4"
"""
    )
    assert cfg.control == ControllerConfig()
    assert isinstance(build_stepper(cfg), RungeKutta4)


def test_inline_bad_order_for_multistep():
    cfg = load_config('inline:\n[stepper]\nname = "adams_bashforth"\norder = 9\n')
    with pytest.raises(ConfigError):
        build_stepper(cfg)


def test_fixed_order_mismatch():
    with pytest.raises(ConfigError):
        build_stepper(IntegratorConfig(stepper="dopri5", order=4))


def test_dense_needs_embedded_stepper():
    with pytest.raises(ConfigError):
        build_stepper(IntegratorConfig(stepper="rk4", dense_output=True))


def test_unknown_stepper_name():
    with pytest.raises(KeyError):
        build_stepper(IntegratorConfig(stepper="no_such_method"))


def test_toml_syntax_error_message():
    bad_inline = """
inline:
[stepper]
name = "dopri5"

[control
atol = 1e-6
"""
    with pytest.raises(ConfigError) as exc_info:
        load_config(bad_inline)

    error_msg = str(exc_info.value)
    assert "[control" in error_msg
    assert ">>>" in error_msg
    assert "^" in error_msg


def test_bad_value_types():
    with pytest.raises(ConfigError):
        load_config('inline:\n[stepper]\nname = "dopri5"\ndense_output = "yes"\n')
    with pytest.raises(ConfigError):
        load_config('inline:\n[control]\natol = "tight"\n')
    with pytest.raises(ConfigError):
        load_config("inline:\nstepper = 3\n")


def test_unknown_keys_warn():
    with pytest.warns(UserWarning) as record:
        cfg = load_config(DATA_DIR / "unknown_keys.toml")
    messages = " ".join(str(w.message) for w in record)
    assert "plot" in messages
    assert "method" in messages
    assert "safety" in messages
    assert cfg.stepper == "dopri5"


def test_missing_file():
    with pytest.raises(ConfigError):
        load_config(DATA_DIR / "does_not_exist.toml")


def test_to_dict():
    d = IntegratorConfig(stepper="cash_karp54").to_dict()
    assert d["stepper"] == "cash_karp54"
    assert d["control"]["atol"] == 1e-6
