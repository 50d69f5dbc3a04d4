from __future__ import annotations

import math
from dataclasses import replace
from typing import Optional
from warnings import warn

import numpy as np

from .cost import CostFunction
from .numerics import central_gradient, covariance_from_hessian, hessian_calls, numerical_hessian
from .params import ParameterState
from .result import FitResult
from .util import edm_goal


def result_at_state(cost: CostFunction, state: ParameterState, *, tolerance: float = 0.1) -> FitResult:
    """Unconverged FitResult for the cost evaluated at `state` as given.

    Used when the parameters were edited after the last minimization, so
    that Hesse runs at the edited point instead of the stale minimum.
    """
    state = state.copy()
    return FitResult(
        value=cost(state.values),
        edm=math.inf,
        valid=False,
        nfcn=1,
        call_limit_reached=False,
        state=state,
        errordef=cost.errordef,
        edm_goal=edm_goal(tolerance, cost.errordef, migrad_factor=True),
        method="hesse",
        message="evaluated at the current parameter state",
    )


def estimate_covariance(
    cost: CostFunction,
    fmin: FitResult,
    *,
    call_limit: int = 0,
    precision: Optional[float] = None,
    update_edm: bool = False,
) -> FitResult:
    """Covariance of the free parameters from second derivatives at the minimum.

    Returns a new FitResult with value and edm of `fmin` preserved. On
    success the covariance is 2 * errordef * H^-1 and the parameter errors
    are replaced by the square roots of its diagonal. When the Hessian is not
    positive definite (or the call limit is too low), the result carries no
    covariance and is not valid; this is reported with a warning, not raised.

    With `update_edm`, the edm is recomputed from the new covariance and the
    gradient at the point, and validity follows from it.
    """
    state = fmin.state.copy()
    free = state.free_indices()
    if not free:
        if update_edm:
            fmin = replace(fmin, edm=0.0, valid=math.isfinite(fmin.value))
        return replace(fmin, state=state, has_covariance=False, covariance=None)

    needed = hessian_calls(len(free))
    if call_limit > 0 and needed > call_limit:
        warn(
            f"Hesse needs {needed} calls, more than the limit of {call_limit}.",
            UserWarning,
        )
        return replace(
            fmin,
            state=state,
            valid=False,
            call_limit_reached=True,
            has_covariance=False,
            covariance=None,
        )

    full = state.values
    lo, hi = state.bounds(free)
    ncall = 0

    def func(theta: np.ndarray) -> float:
        nonlocal ncall
        ncall += 1
        x = full.copy()
        x[free] = theta
        return cost(x)

    hess = numerical_hessian(func, full[free], lo, hi, precision=precision)
    cov = covariance_from_hessian(hess, cost.errordef)
    if hess is None and fmin.has_covariance:
        warn("Hesse skipped: a parameter is at its limit; keeping the minimizer covariance.", UserWarning)
        return replace(fmin, state=state, nfcn=fmin.nfcn + ncall)
    if cov is None:
        reason = "a parameter is at its limit" if hess is None else "Hessian is not positive definite"
        warn(f"Hesse failed: {reason}.", UserWarning)
        return replace(
            fmin,
            state=state,
            valid=False,
            nfcn=fmin.nfcn + ncall,
            has_covariance=False,
            covariance=None,
        )

    for k, i in enumerate(free):
        state.set_error(i, math.sqrt(cov[k, k]))
    if update_edm:
        g = central_gradient(func, full[free], lo, hi, precision=precision)
        edm = float(0.5 * g @ (cov / (2.0 * cost.errordef)) @ g)
        fmin = replace(fmin, edm=edm, valid=bool(edm <= fmin.edm_goal and math.isfinite(fmin.value)))
    return replace(
        fmin,
        state=state,
        nfcn=fmin.nfcn + ncall,
        has_covariance=True,
        covariance=cov,
        errordef=cost.errordef,
    )
