from __future__ import annotations

import math
from typing import Any, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import chi2


def cl_to_probability(cl: float) -> float:
    """Interpret a confidence level.

    Values in (0, 1) are probabilities. Values >= 1 are a number of standard
    deviations of a normal distribution and are converted to the probability
    content of the central interval, e.g. cl=1 -> 0.6827, cl=2 -> 0.9545.
    """
    cl = float(cl)
    if not math.isfinite(cl) or cl <= 0.0:
        raise ValueError(f"Confidence level must be positive, got {cl!r}.")
    if cl >= 1.0:
        return float(chi2(1).cdf(cl * cl))
    return cl


def cl_to_errordef_factor(cl: float, ndof: int = 2) -> float:
    """Multiplier of the error definition for a given confidence level."""
    return float(chi2(ndof).ppf(cl_to_probability(cl)))


def edm_goal(tolerance: float, errordef: float, *, migrad_factor: bool = False) -> float:
    """EDM below which a minimum counts as converged."""
    goal = max(float(tolerance) * float(errordef), 4.0 * math.sqrt(np.finfo(float).eps))
    if migrad_factor:
        goal *= 2e-3
    return goal


def default_call_limit(nfree: int) -> int:
    """Adaptive call budget for one minimization over `nfree` parameters."""
    n = int(nfree)
    return 200 + 100 * n + 5 * n * n


def default_minos_call_limit(nfree: int) -> int:
    """Adaptive call budget for the Minos search of one parameter."""
    return 2 * (int(nfree) + 1) * default_call_limit(nfree)


def scan_grid(
    center: float,
    sigma: float,
    *,
    size: int,
    bound: Any,
    grid: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """Return 1D scan points from an explicit grid, a (lo, hi) range or n sigmas."""
    if grid is not None:
        x = np.asarray(grid, dtype=float)
        if x.ndim != 1:
            raise ValueError("grid must be 1D array-like")
        return x
    lo, hi = scan_range(center, sigma, bound)
    size = int(size)
    if size < 2:
        raise ValueError(f"size must be at least 2, got {size}.")
    return np.linspace(lo, hi, size)


def scan_range(center: float, sigma: float, bound: Any) -> Tuple[float, float]:
    """Resolve a bound given as (lo, hi) or as a number of sigmas around center."""
    if isinstance(bound, (tuple, list)):
        if len(bound) != 2:
            raise ValueError(f"bound must be (lo, hi), got {bound!r}.")
        lo, hi = float(bound[0]), float(bound[1])
    else:
        n = float(bound)
        lo, hi = center - n * sigma, center + n * sigma
    if not hi > lo:
        raise ValueError(f"Empty scan range ({lo}, {hi}).")
    return lo, hi


def value_error_string(value: float, error: float, digits: int = 2) -> str:
    """Format value and error as `12.3457(12)`: error digits in parentheses.

    The value is rounded to the last significant digit of the error.
    """
    value, error = float(value), abs(float(error))
    if not (math.isfinite(value) and math.isfinite(error)):
        return f"{value:g} +/- {error:g}"
    if error == 0.0:
        return f"{value:.{digits}g}(0)"
    digits = max(1, int(digits))
    exp = math.floor(math.log10(error)) - digits + 1
    err_int = round(error / 10.0**exp)
    if err_int >= 10**digits:
        exp += 1
        err_int = round(error / 10.0**exp)
    if exp <= 0:
        return f"{value:.{-exp}f}({err_int})"
    scale = 10**exp
    return f"{round(value / scale) * scale}({err_int * scale})"
