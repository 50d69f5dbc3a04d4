"""Profile-likelihood (Minos) intervals."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from .backends.common import Minimizer
from .cost import CostFunction
from .numerics import find_crossing
from .result import FitResult, MinosResult
from .retry import robust_fit
from .util import cl_to_errordef_factor, default_minos_call_limit


class _CallBudgetExhausted(Exception):
    pass


class _NewMinimum(Exception):
    pass


@dataclass(frozen=True)
class _Side:
    offset: float
    valid: bool
    at_limit: bool = False
    at_max_fcn: bool = False
    new_min: bool = False


def minos_error(
    minimizer: Minimizer,
    cost: CostFunction,
    fmin: FitResult,
    index: int,
    *,
    call_limit: int = 0,
    strategy: int = 1,
    tolerance: float = 0.1,
    precision: Optional[float] = None,
    iterate: int = 5,
) -> MinosResult:
    """Asymmetric interval of one parameter at the current error definition.

    For trial values of the parameter (held fixed) all other free parameters
    are re-minimized; the interval ends where this profiled cost exceeds the
    minimum by `cost.errordef`. Each direction stops early on a declared
    limit, on the call budget, or when a lower minimum turns up.
    """
    state = fmin.state
    param = state[index]
    x0 = float(param.value)
    sigma = fmin.error_of(index)
    lo_lim, hi_lim = param.bounds
    nfree = len(state.free_indices())
    budget = int(call_limit) if call_limit > 0 else default_minos_call_limit(nfree)
    up = cost.errordef
    new_min_level = fmin.value - float(tolerance) * up

    base = state.copy()
    base.fix(index)
    used = 0

    def search(direction: int) -> _Side:
        if direction > 0:
            t_max = (hi_lim - x0) / sigma
        else:
            t_max = (x0 - lo_lim) / sigma
        last = {"t": 0.0, "valid": True}

        def excess(t: float) -> float:
            nonlocal used
            s = base.copy()
            s.set_value(index, x0 + direction * t * sigma)
            r = robust_fit(
                minimizer,
                cost,
                s,
                strategy=strategy,
                tolerance=tolerance,
                precision=precision,
                iterate=iterate,
            )
            used += r.nfcn
            last["t"] = t
            last["valid"] = r.valid
            if r.value < new_min_level:
                raise _NewMinimum()
            if used > budget:
                raise _CallBudgetExhausted()
            return r.value - fmin.value - up

        try:
            crossing = find_crossing(excess, t_max=max(0.0, t_max))
        except _NewMinimum:
            return _Side(direction * last["t"] * sigma, valid=False, new_min=True)
        except _CallBudgetExhausted:
            return _Side(direction * last["t"] * sigma, valid=False, at_max_fcn=True)
        return _Side(
            direction * crossing.t * sigma,
            valid=bool(crossing.converged and last["valid"]),
            at_limit=crossing.at_limit,
        )

    lower = search(-1)
    upper = search(+1)
    return MinosResult(
        name=param.name,
        number=index,
        min=x0,
        lower=min(0.0, lower.offset),
        upper=max(0.0, upper.offset),
        lower_valid=lower.valid,
        upper_valid=upper.valid,
        at_lower_limit=lower.at_limit,
        at_upper_limit=upper.at_limit,
        at_lower_max_fcn=lower.at_max_fcn,
        at_upper_max_fcn=upper.at_max_fcn,
        lower_new_min=lower.new_min,
        upper_new_min=upper.new_min,
        nfcn=used,
    )


def minos_errors(
    minimizer: Minimizer,
    cost: CostFunction,
    fmin: FitResult,
    indices: Sequence[int],
    *,
    cl: Optional[float] = None,
    call_limit: int = 0,
    strategy: int = 1,
    tolerance: float = 0.1,
    precision: Optional[float] = None,
) -> Dict[str, MinosResult]:
    """Minos intervals for several parameters at confidence level `cl`.

    cl=None keeps the error definition as is. Otherwise cl (a probability, or
    a number of sigmas when >= 1) is turned into a multiplier of the error
    definition via the chi-square quantile with 2 degrees of freedom, which
    is applied for the duration of the search only.
    """
    factor = 1.0 if cl is None else cl_to_errordef_factor(cl, ndof=2)
    if not (math.isfinite(factor) and factor > 0.0):
        raise ValueError(f"Confidence level {cl!r} gives no usable error definition.")
    out: Dict[str, MinosResult] = {}
    with cost.scaled_errordef(factor):
        for i in indices:
            me = minos_error(
                minimizer,
                cost,
                fmin,
                i,
                call_limit=call_limit,
                strategy=strategy,
                tolerance=tolerance,
                precision=precision,
            )
            out[me.name] = me
    return out
