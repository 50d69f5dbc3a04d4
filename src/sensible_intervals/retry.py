from __future__ import annotations

from typing import Optional

from .backends.common import Minimizer
from .cost import CostFunction
from .params import ParameterState
from .result import FitResult

# Strategy used for every retry after the first attempt.
RETRY_STRATEGY = 2


def robust_fit(
    minimizer: Minimizer,
    cost: CostFunction,
    state: ParameterState,
    *,
    call_limit: int = 0,
    strategy: int = 0,
    tolerance: float = 0.1,
    precision: Optional[float] = None,
    iterate: int = 5,
    use_simplex: bool = True,
) -> FitResult:
    """Minimize with retries until the result is valid.

    Runs the primary algorithm once at `strategy`. While the result is
    invalid, the call limit was not hit and `iterate` > 1, it optionally runs
    the simplex fallback from the current best state and then the primary
    algorithm again from that result, both at RETRY_STRATEGY, and decrements
    `iterate`. The last result is returned even if it is still invalid.
    """
    fmin = minimizer.minimize(
        cost,
        state,
        strategy=strategy,
        call_limit=call_limit,
        tolerance=tolerance,
        precision=precision,
    )
    while not fmin.valid and not fmin.call_limit_reached and iterate > 1:
        seed = fmin.state
        if use_simplex:
            fmin = minimizer.minimize_simplex(
                cost,
                seed,
                strategy=RETRY_STRATEGY,
                call_limit=call_limit,
                tolerance=tolerance,
                precision=precision,
            )
            seed = fmin.state
        fmin = minimizer.minimize(
            cost,
            seed,
            strategy=RETRY_STRATEGY,
            call_limit=call_limit,
            tolerance=tolerance,
            precision=precision,
        )
        iterate -= 1
    return fmin
