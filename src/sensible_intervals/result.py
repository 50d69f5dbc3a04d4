from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .params import ParameterState
from .util import value_error_string

__all__ = ["FitResult", "MinosResult"]


@dataclass(frozen=True)
class FitResult:
    """Outcome of one minimization.

    `state` is owned by the result: minimizers hand over a private copy, so
    later changes to a session's parameters never alter a stored result.
    `covariance` (if any) spans the free parameters in state order.
    """

    value: float
    edm: float
    valid: bool
    nfcn: int
    call_limit_reached: bool
    state: ParameterState
    errordef: float
    edm_goal: float
    has_covariance: bool = False
    covariance: Optional[np.ndarray] = None
    method: str = "migrad"
    message: str = ""

    @property
    def fval(self) -> float:
        return self.value

    @property
    def is_above_max_edm(self) -> bool:
        return bool(self.edm > self.edm_goal)

    @property
    def has_parameters_at_limit(self) -> bool:
        return any(p.has_limits and not p.fixed and p.at_limit() for p in self.state)

    def error_of(self, index: int) -> float:
        """Parabolic error of a parameter: from the covariance when present."""
        free = self.state.free_indices()
        if self.has_covariance and self.covariance is not None and index in free:
            k = free.index(index)
            var = float(self.covariance[k, k])
            if var > 0.0:
                return float(np.sqrt(var))
        return float(self.state.error_of(index))

    def summary(self, digits: int = 4) -> str:
        """Return a human-readable summary string."""
        status = "valid" if self.valid else "INVALID"
        lines = [
            f"FitResult({self.method}, {status})",
            f"  {'fval':>12s}: {self.value:.{digits}g}",
            f"  {'edm':>12s}: {self.edm:.{digits}g} (goal: {self.edm_goal:.{digits}g})",
            f"  {'nfcn':>12s}: {self.nfcn}",
        ]
        if self.call_limit_reached:
            lines.append(f"  {'':>12s}  call limit reached")
        if not self.has_covariance:
            lines.append(f"  {'':>12s}  no covariance")
        if self.message:
            lines.append(f"  {'message':>12s}: {self.message}")
        for p in self.state:
            tag = " (fixed)" if p.fixed else ""
            if p.fixed:
                lines.append(f"  {p.name:>12s}: {p.value:.{digits}g}{tag}")
            else:
                lines.append(f"  {p.name:>12s}: {value_error_string(p.value, p.step)}")
        return "\n".join(lines)


@dataclass(frozen=True)
class MinosResult:
    """Asymmetric interval of one parameter.

    `lower` and `upper` are offsets from the parameter value at the minimum,
    with lower <= 0 <= upper.
    """

    name: str
    number: int
    min: float
    lower: float
    upper: float
    lower_valid: bool
    upper_valid: bool
    at_lower_limit: bool = False
    at_upper_limit: bool = False
    at_lower_max_fcn: bool = False
    at_upper_max_fcn: bool = False
    lower_new_min: bool = False
    upper_new_min: bool = False
    nfcn: int = 0

    @property
    def is_valid(self) -> bool:
        return bool(self.lower_valid and self.upper_valid)

    @property
    def interval(self):
        """(lo, hi) in parameter units."""
        return (self.min + self.lower, self.min + self.upper)

    def summary(self, digits: int = 4) -> str:
        status = "valid" if self.is_valid else "invalid"
        rows = [
            ("Error", f"{self.lower:.{digits}g}", f"{self.upper:.{digits}g}"),
            ("Valid", self.lower_valid, self.upper_valid),
            ("At Limit", self.at_lower_limit, self.at_upper_limit),
            ("Max Fcn", self.at_lower_max_fcn, self.at_upper_max_fcn),
            ("New Min", self.lower_new_min, self.upper_new_min),
        ]
        lines = [f"MinosResult({self.name!r}, {status})"]
        for label, lo, hi in rows:
            lines.append(f"  {label:>10s}: {str(lo):>12s} {str(hi):>12s}")
        return "\n".join(lines)
