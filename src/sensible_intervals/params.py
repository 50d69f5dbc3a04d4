from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from .errors import DuplicateNameError, IndexOutOfRangeError, UnknownParameterError

__all__ = ["Parameter", "ParameterState", "Key"]

Key = Union[str, int]


@dataclass(frozen=True)
class Parameter:
    name: str
    value: float
    step: float
    fixed: bool = False
    lower: Optional[float] = None
    upper: Optional[float] = None

    @property
    def has_limits(self) -> bool:
        return self.lower is not None or self.upper is not None

    @property
    def bounds(self) -> Tuple[float, float]:
        """(lo, hi) with missing limits as -inf/+inf."""
        lo = -np.inf if self.lower is None else float(self.lower)
        hi = np.inf if self.upper is None else float(self.upper)
        return lo, hi

    def at_limit(self, rtol: float = 1e-8) -> bool:
        lo, hi = self.bounds
        tol = rtol * (abs(self.value) + 1.0)
        return bool(self.value - lo <= tol or hi - self.value <= tol)


class ParameterState:
    """Ordered, named set of parameters.

    Parameters are addressed by name or by 0-based index; insertion order is
    the algorithmic order used by minimizers and covariance matrices. Each
    parameter is an immutable `Parameter`; mutators swap in a replaced copy.
    """

    def __init__(self):
        self._params: List[Parameter] = []
        self._index: Dict[str, int] = {}

    # ---- construction ----
    def add(self, name: str, value: float, step: float = 0.1) -> int:
        """Append a parameter and return its index."""
        name = str(name)
        if name in self._index:
            raise DuplicateNameError(f"Parameter {name!r} already exists.")
        step = float(step)
        if not (math.isfinite(step) and step > 0.0):
            raise ValueError(f"Step for {name!r} must be positive, got {step!r}.")
        self._index[name] = len(self._params)
        self._params.append(Parameter(name=name, value=float(value), step=step))
        return self._index[name]

    def copy(self) -> "ParameterState":
        other = ParameterState()
        other._params = list(self._params)
        other._index = dict(self._index)
        return other

    # ---- addressing ----
    def keypair(self, key: Key) -> Tuple[int, str]:
        """Resolve a name or 0-based index to (index, name)."""
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            i = int(key)
            if not 0 <= i < len(self._params):
                raise UnknownParameterError(
                    f"Parameter index {i} out of range for {len(self._params)} parameters."
                )
            return i, self._params[i].name
        if isinstance(key, str):
            try:
                i = self._index[key]
            except KeyError:
                raise UnknownParameterError(f"Unknown parameter {key!r}.") from None
            return i, key
        raise TypeError(f"Parameter key must be a name or an index, got {key!r}.")

    def _checked_index(self, key: Key) -> int:
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            i = int(key)
            if not 0 <= i < len(self._params):
                raise IndexOutOfRangeError(
                    f"Parameter index {i} out of range for {len(self._params)} parameters."
                )
            return i
        return self.keypair(key)[0]

    def __getitem__(self, key: Key) -> Parameter:
        return self._params[self.keypair(key)[0]]

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._params)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._params)

    def __repr__(self) -> str:
        inner = ", ".join(f"{p.name}={p.value:g}" for p in self._params)
        return f"ParameterState({inner})"

    # ---- mutators ----
    def _update(self, i: int, **changes) -> None:
        self._params[i] = replace(self._params[i], **changes)

    def set_value(self, key: Key, value: float) -> None:
        self._update(self._checked_index(key), value=float(value))

    def set_error(self, key: Key, step: float) -> None:
        i = self._checked_index(key)
        step = float(step)
        if not (math.isfinite(step) and step > 0.0):
            raise ValueError(
                f"Step for {self._params[i].name!r} must be positive, got {step!r}."
            )
        self._update(i, step=step)

    def fix(self, key: Key) -> None:
        self._update(self._checked_index(key), fixed=True)

    def unfix(self, key: Key) -> None:
        self._update(self._checked_index(key), fixed=False)

    def set_limits(self, key: Key, lower: Optional[float], upper: Optional[float]) -> None:
        """Set both limits; None (or an infinite value) removes that side."""
        i = self._checked_index(key)
        lo = None if lower is None or np.isneginf(lower) else float(lower)
        hi = None if upper is None or np.isposinf(upper) else float(upper)
        if lo is not None and hi is not None and not lo < hi:
            raise ValueError(
                f"Limits for {self._params[i].name!r} need lower < upper, got ({lo}, {hi})."
            )
        value = self._params[i].value
        if lo is not None:
            value = max(value, lo)
        if hi is not None:
            value = min(value, hi)
        self._update(i, lower=lo, upper=hi, value=value)

    def set_lower_limit(self, key: Key, lower: float) -> None:
        i = self._checked_index(key)
        self.set_limits(i, lower, self._params[i].upper)

    def set_upper_limit(self, key: Key, upper: float) -> None:
        i = self._checked_index(key)
        self.set_limits(i, self._params[i].lower, upper)

    def remove_limits(self, key: Key) -> None:
        self._update(self._checked_index(key), lower=None, upper=None)

    # ---- accessors ----
    def value_of(self, key: Key) -> float:
        return self[key].value

    def error_of(self, key: Key) -> float:
        return self[key].step

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self._params)

    @property
    def values(self) -> np.ndarray:
        return np.array([p.value for p in self._params], dtype=float)

    @property
    def errors(self) -> np.ndarray:
        return np.array([p.step for p in self._params], dtype=float)

    @property
    def fixed(self) -> np.ndarray:
        return np.array([p.fixed for p in self._params], dtype=bool)

    def free_indices(self) -> List[int]:
        return [i for i, p in enumerate(self._params) if not p.fixed]

    def free_names(self) -> List[str]:
        return [p.name for p in self._params if not p.fixed]

    def bounds(self, indices: Optional[List[int]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Return (lo, hi) arrays for the given (default: all) parameters."""
        if indices is None:
            indices = list(range(len(self._params)))
        lo: List[float] = []
        hi: List[float] = []
        for i in indices:
            a, b = self._params[i].bounds
            lo.append(a)
            hi.append(b)
        return np.array(lo, dtype=float), np.array(hi, dtype=float)

    def has_limits(self, indices: Optional[List[int]] = None) -> bool:
        if indices is None:
            indices = list(range(len(self._params)))
        return any(self._params[i].has_limits for i in indices)
