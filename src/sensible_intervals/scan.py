"""Function scans around the minimum.

None of these touch the caller's parameter state: each works on a private
copy, and a temporary error definition is restored on every exit path.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple
from warnings import warn

import numpy as np

from .backends.common import Minimizer
from .cost import CostFunction
from .errors import FixedParameterError, InvalidMinimumError
from .params import ParameterState
from .result import FitResult
from .retry import robust_fit
from .util import cl_to_errordef_factor, scan_grid, scan_range


def require_free(state: ParameterState, *indices: int) -> None:
    for i in indices:
        p = state[i]
        if p.fixed:
            raise FixedParameterError(f"Cannot scan over fixed parameter {p.name!r}.")


def profile(
    cost: CostFunction,
    state: ParameterState,
    index: int,
    *,
    size: int = 100,
    bound: Any = 2,
    grid: Optional[Sequence[float]] = None,
    subtract_min: bool = False,
) -> Tuple[np.ndarray, np.ndarray]:
    """Cost along one parameter with all others held at their values."""
    require_free(state, index)
    p = state[index]
    x = scan_grid(p.value, p.step, size=size, bound=bound, grid=grid)
    values = state.values
    y = np.empty(x.shape[0], dtype=float)
    for i, v in enumerate(x):
        values[index] = v
        y[i] = cost(values)
    if subtract_min:
        y -= np.min(y)
    return x, y


def contour(
    cost: CostFunction,
    state: ParameterState,
    ix: int,
    iy: int,
    *,
    size: Any = 50,
    bound: Any = 2,
    grid: Optional[Tuple[Sequence[float], Sequence[float]]] = None,
    subtract_min: bool = False,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Cost on a 2D grid over two parameters, all others held at their values.

    `bound` is a number of sigmas or ((xlo, xhi), (ylo, yhi)); `size` is an
    int or (nx, ny). Returns (xv, yv, zv) with zv.shape == (len(xv), len(yv)).
    """
    if ix == iy:
        raise ValueError("contour needs two different parameters.")
    if grid is not None:
        xv, yv = (np.asarray(g, dtype=float) for g in grid)
        if xv.ndim != 1 or yv.ndim != 1:
            raise ValueError("grid per parameter must be 1D array-like")
    else:
        if isinstance(bound, (tuple, list)):
            xbound, ybound = bound
        else:
            xbound = ybound = bound
        if isinstance(size, (tuple, list)):
            nx, ny = size
        else:
            nx = ny = size
        px, py = state[ix], state[iy]
        xv = np.linspace(*scan_range(px.value, px.step, xbound), int(nx))
        yv = np.linspace(*scan_range(py.value, py.step, ybound), int(ny))

    values = state.values
    zv = np.empty((xv.shape[0], yv.shape[0]), dtype=float)
    for i, xi in enumerate(xv):
        values[ix] = xi
        for j, yj in enumerate(yv):
            values[iy] = yj
            zv[i, j] = cost(values)
    if subtract_min:
        zv -= np.min(zv)
    return xv, yv, zv


def mnprofile(
    minimizer: Minimizer,
    cost: CostFunction,
    state: ParameterState,
    index: int,
    *,
    size: int = 30,
    bound: Any = 2,
    grid: Optional[Sequence[float]] = None,
    subtract_min: bool = False,
    ncall: int = 0,
    iterate: int = 5,
    use_simplex: bool = True,
    tolerance: float = 0.1,
    precision: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Profiled cost along one parameter.

    At each scan point the parameter is fixed and all other free parameters
    are re-minimized (strategy 0, with retries). Returns (x, y, ok) where ok
    flags the points whose minimization converged.
    """
    require_free(state, index)
    p = state[index]
    x = scan_grid(p.value, p.step, size=size, bound=bound, grid=grid)
    work = state.copy()
    work.fix(index)

    y = np.empty(x.shape[0], dtype=float)
    ok = np.zeros(x.shape[0], dtype=bool)
    for i, v in enumerate(x):
        work.set_value(index, v)
        fmin = robust_fit(
            minimizer,
            cost,
            work,
            call_limit=ncall,
            strategy=0,
            tolerance=tolerance,
            precision=precision,
            iterate=iterate,
            use_simplex=use_simplex,
        )
        if not fmin.valid:
            warn(f"Minimization fails to converge for {p.name}={v}", UserWarning)
        ok[i] = fmin.valid
        y[i] = fmin.value
    if subtract_min:
        y -= np.min(y)
    return x, y, ok


def mncontour(
    minimizer: Minimizer,
    cost: CostFunction,
    fmin: FitResult,
    ix: int,
    iy: int,
    *,
    cl: float = 0.68,
    size: int = 50,
    interpolated: int = 0,
    strategy: int = 1,
    tolerance: float = 0.1,
) -> np.ndarray:
    """Closed boundary of the 2D confidence region of two parameters.

    The confidence level (a probability, or a number of sigmas when >= 1)
    is converted with the 2-dof chi-square quantile into a multiplier of the
    error definition, which is in effect only while the boundary is traced.
    Returns an array of shape (size + 1, 2) whose last row repeats the first.
    """
    if ix == iy:
        raise ValueError("mncontour needs two different parameters.")
    require_free(fmin.state, ix, iy)
    if not fmin.valid:
        raise InvalidMinimumError("Function minimum is not valid.")
    size = int(size)
    if size < 3:
        raise ValueError(f"mncontour needs size >= 3, got {size}.")
    factor = cl_to_errordef_factor(cl, ndof=2)

    with cost.scaled_errordef(factor):
        points = minimizer.trace_contour(
            cost,
            fmin,
            ix,
            iy,
            num_points=size,
            strategy=strategy,
            tolerance=tolerance,
        )
    points = [(float(a), float(b)) for a, b in points]
    points.append(points[0])

    if interpolated > size:
        warn("Interpolation is not implemented; returning the traced points.", UserWarning)
    return np.asarray(points, dtype=float)
