from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from scipy.optimize import minimize

from ..cost import CostFunction
from ..numerics import (
    central_gradient,
    distance_to_limits,
    find_crossing,
    inverse_if_posdef,
    is_posdef,
    numerical_hessian,
)
from ..params import ParameterState
from ..result import FitResult
from ..util import default_call_limit, edm_goal


class _CallLimitReached(Exception):
    pass


class _Objective:
    """Cost restricted to the free parameters, with a call budget."""

    def __init__(self, cost: CostFunction, full: np.ndarray, free: List[int], limit: int):
        self.cost = cost
        self.full = np.asarray(full, dtype=float).copy()
        self.free = list(free)
        self.limit = int(limit)
        self.enforce = True
        self.ncall = 0
        self.best_f = math.inf
        self.best_x: Optional[np.ndarray] = None

    def expand(self, theta: np.ndarray) -> np.ndarray:
        x = self.full.copy()
        x[self.free] = theta
        return x

    def __call__(self, theta: np.ndarray) -> float:
        if self.enforce and self.ncall >= self.limit:
            raise _CallLimitReached()
        self.ncall += 1
        theta = np.asarray(theta, dtype=float)
        f = self.cost(self.expand(theta))
        if f < self.best_f:
            self.best_f = f
            self.best_x = theta.copy()
        return f

    def grad(self, theta: np.ndarray) -> np.ndarray:
        g = self.cost.grad(self.expand(np.asarray(theta, dtype=float)))
        return g[self.free]


def _scipy_bounds(lo: np.ndarray, hi: np.ndarray) -> List[Tuple[Optional[float], Optional[float]]]:
    out = []
    for lo_i, hi_i in zip(lo, hi):
        lo_b = None if not math.isfinite(lo_i) else float(lo_i)
        hi_b = None if not math.isfinite(hi_i) else float(hi_i)
        out.append((lo_b, hi_b))
    return out


def _dense_hess_inv(res: Any) -> Optional[np.ndarray]:
    hess_inv = getattr(res, "hess_inv", None)
    if hess_inv is None:
        return None
    if hasattr(hess_inv, "todense"):
        return np.asarray(hess_inv.todense(), dtype=float)
    return np.asarray(hess_inv, dtype=float)


class ScipyMinimizer:
    """Minimizer built on scipy.optimize.

    Options (constructor keywords):
    - options: dict merged into the options of the quasi-Newton run
    - simplex_options: dict merged into the Nelder-Mead options
    """

    name = "scipy"

    def __init__(
        self,
        *,
        options: Optional[Dict[str, Any]] = None,
        simplex_options: Optional[Dict[str, Any]] = None,
    ):
        self.options = dict(options or {})
        self.simplex_options = dict(simplex_options or {})

    # ---- helpers ----
    @staticmethod
    def _fixed_only(
        cost: CostFunction, state: ParameterState, goal: float, method: str
    ) -> FitResult:
        fval = cost(state.values)
        return FitResult(
            value=fval,
            edm=0.0,
            valid=math.isfinite(fval),
            nfcn=1,
            call_limit_reached=False,
            state=state,
            errordef=cost.errordef,
            edm_goal=goal,
            method=method,
            message="no free parameters",
        )

    # ---- primary ----
    def minimize(
        self,
        cost: CostFunction,
        state: ParameterState,
        *,
        strategy: int = 1,
        call_limit: int = 0,
        tolerance: float = 0.1,
        precision: Optional[float] = None,
    ) -> FitResult:
        """Quasi-Newton minimization (BFGS, or L-BFGS-B when limits are set)."""
        state = state.copy()
        free = state.free_indices()
        goal = edm_goal(tolerance, cost.errordef, migrad_factor=True)
        if not free:
            return self._fixed_only(cost, state, goal, "migrad")

        lo, hi = state.bounds(free)
        x0 = np.clip(state.values[free], lo, hi)
        limit = int(call_limit) if call_limit > 0 else default_call_limit(len(free))
        obj = _Objective(cost, state.values, free, limit)

        bounded = state.has_limits(free)
        method = "L-BFGS-B" if bounded else "BFGS"
        if cost.has_grad:
            jac: Any = obj.grad
        else:
            jac = "2-point" if strategy <= 0 else "3-point"

        options: Dict[str, Any] = {"maxiter": limit}
        if precision is not None and not cost.has_grad:
            options["finite_diff_rel_step"] = math.sqrt(float(precision))
        options.update(self.options)

        kwargs: Dict[str, Any] = {}
        if bounded:
            kwargs["bounds"] = _scipy_bounds(lo, hi)

        limit_hit = False
        hess_inv = None
        try:
            res = minimize(obj, x0, method=method, jac=jac, options=options, **kwargs)
            theta = np.clip(np.asarray(res.x, dtype=float), lo, hi)
            fval = float(res.fun)
            message = str(res.message)
            hess_inv = _dense_hess_inv(res)
        except _CallLimitReached:
            limit_hit = True
            theta = obj.best_x if obj.best_x is not None else x0
            fval = obj.best_f if obj.best_x is not None else math.nan
            message = "call limit reached"

        # Error analysis runs outside the budget; its calls are still counted.
        obj.enforce = False
        edm = math.inf
        if not limit_hit:
            # strategy 0 trusts the quasi-Newton estimate
            if strategy >= 1 or hess_inv is None:
                hess = numerical_hessian(obj, theta, lo, hi, precision=precision)
                if hess is not None:
                    hess_inv = inverse_if_posdef(hess)
            if hess_inv is not None and not is_posdef(hess_inv):
                hess_inv = None
            if hess_inv is not None:
                g = central_gradient(obj, theta, lo, hi, precision=precision)
                edm = float(0.5 * g @ hess_inv @ g)

        cov = None if (limit_hit or hess_inv is None) else 2.0 * cost.errordef * hess_inv
        for k, i in enumerate(free):
            state.set_value(i, theta[k])
            if cov is not None:
                state.set_error(i, math.sqrt(cov[k, k]))

        valid = bool(cov is not None and edm <= goal and math.isfinite(fval))
        return FitResult(
            value=fval,
            edm=edm,
            valid=valid,
            nfcn=obj.ncall,
            call_limit_reached=limit_hit,
            state=state,
            errordef=cost.errordef,
            edm_goal=goal,
            has_covariance=cov is not None,
            covariance=cov,
            method="migrad",
            message=message,
        )

    # ---- fallback ----
    def minimize_simplex(
        self,
        cost: CostFunction,
        state: ParameterState,
        *,
        strategy: int = 1,
        call_limit: int = 0,
        tolerance: float = 0.1,
        precision: Optional[float] = None,
    ) -> FitResult:
        """Derivative-free Nelder-Mead minimization.

        The initial simplex spans one step (error) along each free parameter.
        EDM is estimated as the spread of cost values over the final simplex;
        no covariance is produced.
        """
        state = state.copy()
        free = state.free_indices()
        goal = edm_goal(tolerance, cost.errordef, migrad_factor=True)
        if not free:
            return self._fixed_only(cost, state, goal, "simplex")

        lo, hi = state.bounds(free)
        x0 = np.clip(state.values[free], lo, hi)
        steps = state.errors[free]
        limit = int(call_limit) if call_limit > 0 else default_call_limit(len(free))
        obj = _Objective(cost, state.values, free, limit)

        simplex = np.tile(x0, (len(free) + 1, 1))
        for k in range(len(free)):
            v = x0[k] + steps[k]
            if v > hi[k]:
                v = x0[k] - steps[k]
            simplex[k + 1, k] = v
        simplex = np.clip(simplex, lo, hi)

        options: Dict[str, Any] = {
            "maxfev": limit,
            "initial_simplex": simplex,
            "fatol": goal,
            "xatol": 1e-2 * float(tolerance) * float(np.min(steps)),
        }
        options.update(self.simplex_options)

        kwargs: Dict[str, Any] = {}
        if state.has_limits(free):
            kwargs["bounds"] = _scipy_bounds(lo, hi)

        try:
            res = minimize(obj, x0, method="Nelder-Mead", options=options, **kwargs)
            theta = np.asarray(res.x, dtype=float)
            fval = float(res.fun)
            fvals = np.asarray(res.final_simplex[1], dtype=float)
            edm = float(np.max(fvals) - np.min(fvals))
            limit_hit = int(res.status) in (1, 2)
            message = str(res.message)
        except _CallLimitReached:
            theta = obj.best_x if obj.best_x is not None else x0
            fval = obj.best_f if obj.best_x is not None else math.nan
            edm = math.inf
            limit_hit = True
            message = "call limit reached"

        for k, i in enumerate(free):
            state.set_value(i, theta[k])

        return FitResult(
            value=fval,
            edm=edm,
            valid=bool(not limit_hit and edm <= goal and math.isfinite(fval)),
            nfcn=obj.ncall,
            call_limit_reached=limit_hit,
            state=state,
            errordef=cost.errordef,
            edm_goal=goal,
            method="simplex",
            message=message,
        )

    # ---- confidence regions ----
    def trace_contour(
        self,
        cost: CostFunction,
        fmin: FitResult,
        ix: int,
        iy: int,
        *,
        num_points: int,
        strategy: int = 1,
        tolerance: float = 0.1,
        call_limit: int = 0,
    ) -> List[Tuple[float, float]]:
        """Walk the boundary where the profiled cost rises by `cost.errordef`.

        Directions are evenly spaced in angle in units of the two parameter
        errors; the points come back in angular order, not closed. A direction
        that hits a parameter limit before the crossing stops at the limit.
        """
        base = fmin.state.copy()
        base.fix(ix)
        base.fix(iy)
        origin = np.array([base.value_of(ix), base.value_of(iy)], dtype=float)
        sigma = np.array([fmin.error_of(ix), fmin.error_of(iy)], dtype=float)
        lo, hi = base.bounds([ix, iy])
        target = fmin.value + cost.errordef

        def excess(point: np.ndarray) -> float:
            s = base.copy()
            s.set_value(ix, point[0])
            s.set_value(iy, point[1])
            r = self.minimize(
                cost, s, strategy=strategy, call_limit=call_limit, tolerance=tolerance
            )
            return r.value - target

        points: List[Tuple[float, float]] = []
        for k in range(int(num_points)):
            phi = 2.0 * math.pi * k / int(num_points)
            direction = sigma * np.array([math.cos(phi), math.sin(phi)])
            t_max = distance_to_limits(origin, direction, lo, hi)
            crossing = find_crossing(
                lambda t: excess(origin + t * direction), t_max=t_max
            )
            p = origin + crossing.t * direction
            points.append((float(p[0]), float(p[1])))
        return points
