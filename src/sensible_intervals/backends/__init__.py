"""Minimizer implementations + registry."""

from __future__ import annotations

from typing import Dict, Union

from .common import Minimizer
from .scipy_minimizer import ScipyMinimizer

_MINIMIZERS: Dict[str, Minimizer] = {
    "scipy": ScipyMinimizer(),
}


def get_minimizer(name: Union[str, Minimizer]) -> Minimizer:
    """Return a minimizer implementation by name (objects pass through)."""
    if not isinstance(name, str):
        return name
    try:
        return _MINIMIZERS[name]
    except KeyError as e:
        raise ValueError(
            f"Unknown minimizer {name!r}. Available: {tuple(_MINIMIZERS.keys())}"
        ) from e


AVAILABLE_MINIMIZERS = tuple(_MINIMIZERS.keys())

__all__ = ["Minimizer", "ScipyMinimizer", "get_minimizer", "AVAILABLE_MINIMIZERS"]
