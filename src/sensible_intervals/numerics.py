"""Finite-difference derivatives and level-crossing search."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy.optimize import brentq

_EPS = float(np.finfo(float).eps)


def _steps(x0: np.ndarray, rel: float, lo: np.ndarray, hi: np.ndarray) -> np.ndarray:
    eps = rel * (np.abs(x0) + 1.0)
    for i in range(x0.shape[0]):
        if np.isfinite(lo[i]):
            eps[i] = min(eps[i], 0.5 * max(0.0, x0[i] - lo[i]))
        if np.isfinite(hi[i]):
            eps[i] = min(eps[i], 0.5 * max(0.0, hi[i] - x0[i]))
    return eps


def central_gradient(
    func: Callable[[np.ndarray], float],
    x0: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
    *,
    precision: Optional[float] = None,
) -> np.ndarray:
    """Gradient by central differences, one-sided next to a limit.

    Components that push against an active limit are projected out.
    """
    x0 = np.asarray(x0, dtype=float)
    npar = int(x0.shape[0])
    rel = (precision or _EPS) ** (1.0 / 3.0)
    h = rel * (np.abs(x0) + 1.0)
    f0 = None
    grad = np.zeros(npar, dtype=float)
    for i in range(npar):
        e = np.zeros(npar, dtype=float)
        e[i] = h[i]
        up_ok = x0[i] + h[i] <= hi[i]
        down_ok = x0[i] - h[i] >= lo[i]
        if up_ok and down_ok:
            grad[i] = (func(x0 + e) - func(x0 - e)) / (2.0 * h[i])
        else:
            if f0 is None:
                f0 = float(func(x0))
            if up_ok:
                grad[i] = (func(x0 + e) - f0) / h[i]
            elif down_ok:
                grad[i] = (f0 - func(x0 - e)) / h[i]
        if x0[i] <= lo[i] and grad[i] > 0.0:
            grad[i] = 0.0
        if x0[i] >= hi[i] and grad[i] < 0.0:
            grad[i] = 0.0
    return grad


def numerical_hessian(
    func: Callable[[np.ndarray], float],
    x0: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
    *,
    precision: Optional[float] = None,
) -> Optional[np.ndarray]:
    """Hessian by central differences.

    Steps are relative to |x| + 1 and shrink to half the distance to a
    nearby limit, so no evaluation leaves the allowed range. Returns None
    when a parameter sits exactly on a limit, where no symmetric step fits;
    callers then fall back to another covariance estimate.
    """
    x0 = np.asarray(x0, dtype=float)
    npar = int(x0.shape[0])
    eps = _steps(x0, (precision or _EPS) ** 0.25, lo, hi)
    if np.any(eps <= 0.0):
        return None

    f0 = float(func(x0))
    hess = np.zeros((npar, npar), dtype=float)
    for i in range(npar):
        ei = np.zeros(npar, dtype=float)
        ei[i] = eps[i]
        fpp = float(func(x0 + ei))
        fmm = float(func(x0 - ei))
        hess[i, i] = (fpp - 2.0 * f0 + fmm) / (eps[i] ** 2)
        for j in range(i + 1, npar):
            ej = np.zeros(npar, dtype=float)
            ej[j] = eps[j]
            fpp = float(func(x0 + ei + ej))
            fpm = float(func(x0 + ei - ej))
            fmp = float(func(x0 - ei + ej))
            fmm = float(func(x0 - ei - ej))
            hij = (fpp - fpm - fmp + fmm) / (4.0 * eps[i] * eps[j])
            hess[i, j] = hij
            hess[j, i] = hij
    return hess


def hessian_calls(npar: int) -> int:
    """Number of function calls `numerical_hessian` makes."""
    return 1 + 2 * npar + 2 * npar * (npar - 1)


def inverse_if_posdef(matrix: Optional[np.ndarray]) -> Optional[np.ndarray]:
    """Inverse of a symmetric matrix, or None unless it is positive definite."""
    if matrix is None:
        return None
    a = np.asarray(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1] or not np.all(np.isfinite(a)):
        return None
    a = 0.5 * (a + a.T)
    try:
        np.linalg.cholesky(a)
    except np.linalg.LinAlgError:
        return None
    inv = np.linalg.inv(a)
    return 0.5 * (inv + inv.T)


def covariance_from_hessian(hess: Optional[np.ndarray], errordef: float) -> Optional[np.ndarray]:
    """Covariance 2 * errordef * H^-1, or None unless H is positive definite."""
    inv = inverse_if_posdef(hess)
    if inv is None:
        return None
    return 2.0 * float(errordef) * inv


def is_posdef(matrix: Optional[np.ndarray]) -> bool:
    return inverse_if_posdef(matrix) is not None


@dataclass(frozen=True)
class Crossing:
    """Where a rising function crosses zero along t >= 0."""

    t: float
    at_limit: bool = False
    converged: bool = True


def find_crossing(
    func: Callable[[float], float],
    *,
    t_max: float = math.inf,
    xtol: float = 1e-4,
    max_expand: int = 20,
) -> Crossing:
    """Find t in (0, t_max] with func(t) == 0, given func(0) < 0.

    The search doubles t from 1 until func changes sign, then refines the
    root with Brent's method. If t_max is reached first the result is
    marked `at_limit`; if the expansion budget runs out, `converged` is False.
    """
    lo = 0.0
    t = min(1.0, t_max)
    for _ in range(max_expand):
        ft = float(func(t))
        if ft == 0.0:
            return Crossing(t)
        if ft > 0.0:
            return Crossing(float(brentq(func, lo, t, xtol=xtol)))
        if t >= t_max:
            return Crossing(t, at_limit=True, converged=False)
        lo = t
        t = min(2.0 * t, t_max)
    return Crossing(lo, converged=False)


def distance_to_limits(
    origin: np.ndarray,
    direction: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
) -> float:
    """Largest t with lo <= origin + t * direction <= hi."""
    t_max = math.inf
    for v, d, a, b in zip(origin, direction, lo, hi):
        if d > 0.0 and np.isfinite(b):
            t_max = min(t_max, (b - v) / d)
        elif d < 0.0 and np.isfinite(a):
            t_max = min(t_max, (a - v) / d)
    return max(0.0, float(t_max))
