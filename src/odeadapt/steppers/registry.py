# src/odeadapt/steppers/registry.py
from __future__ import annotations
from typing import Any, Dict

from .base import StepperMeta

__all__ = ["register", "get_stepper", "make_stepper", "registry", "list_steppers"]

# name -> stepper class
_registry: Dict[str, type] = {}


def register(cls: type) -> type:
    """
    Register a stepper class by its meta.name and meta.aliases.
    Enforces uniqueness of the canonical name; aliases may overlap only
    if they point to the same class. Usable as a class decorator.
    """
    meta: StepperMeta = cls.meta
    name = meta.name
    if name in _registry and _registry[name] is not cls:
        raise ValueError(f"Stepper '{name}' already registered with a different class.")
    _registry[name] = cls

    for alias in meta.aliases:
        if alias in _registry and _registry[alias] is not cls:
            raise ValueError(f"Alias '{alias}' already registered for a different class.")
        _registry[alias] = cls
    return cls


def get_stepper(name: str) -> type:
    """
    Return the registered class for 'name' or raise KeyError.
    """
    try:
        return _registry[name]
    except KeyError:
        known = ", ".join(sorted({cls.meta.name for cls in _registry.values()}))
        raise KeyError(f"Unknown stepper '{name}'. Registered: {known}") from None


def make_stepper(name: str, **options: Any):
    """Instantiate the stepper registered under 'name'."""
    return get_stepper(name)(**options)


def registry() -> Dict[str, type]:
    """
    Read-only-ish view (do not mutate externally).
    """
    return dict(_registry)


def list_steppers(**filters: Any) -> list[str]:
    """
    Canonical names of registered steppers, optionally filtered on meta fields
    (e.g. ``time_control="adaptive"``) or caps fields (e.g. ``dense_output=True``).
    """
    names = []
    for cls in {id(c): c for c in _registry.values()}.values():
        meta: StepperMeta = cls.meta
        ok = True
        for key, want in filters.items():
            if hasattr(meta, key):
                have = getattr(meta, key)
            elif hasattr(meta.caps, key):
                have = getattr(meta.caps, key)
            else:
                raise ValueError(f"Unknown stepper filter '{key}'")
            if have != want:
                ok = False
                break
        if ok:
            names.append(meta.name)
    return sorted(names)
