"""Exception types raised by sensible_intervals."""

from __future__ import annotations

__all__ = [
    "DuplicateNameError",
    "IndexOutOfRangeError",
    "UnknownParameterError",
    "FixedParameterError",
    "InvalidMinimumError",
]


class DuplicateNameError(ValueError):
    """A parameter with this name already exists."""


class IndexOutOfRangeError(IndexError):
    """A parameter index is outside [0, npar)."""


class UnknownParameterError(KeyError):
    """A name or index does not refer to any parameter."""


class FixedParameterError(ValueError):
    """A scan or interval was requested for a fixed parameter."""


class InvalidMinimumError(RuntimeError):
    """The function minimum is not valid."""
