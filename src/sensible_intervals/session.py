from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union
from warnings import warn

import numpy as np
import uncertainties

from . import scan
from .backends import Minimizer, get_minimizer
from .cost import CostFunction
from .errors import InvalidMinimumError
from .hesse import estimate_covariance, result_at_state
from .minos import minos_errors
from .params import Key, ParameterState
from .result import FitResult, MinosResult
from .retry import robust_fit
from .views import ErrorView, FixedView, LimitView, ValueView

_METHODS = ("migrad", "simplex")


def _build_state(
    values: Union[Sequence[float], Mapping[str, float]],
    names: Optional[Sequence[str]],
    errors: Union[None, Sequence[float], Mapping[str, float]],
    limits: Optional[Mapping[str, Tuple[Optional[float], Optional[float]]]],
    fixed: Union[None, Iterable[str], Mapping[str, bool]],
) -> ParameterState:
    """Create the initial parameter state from constructor arguments."""
    if isinstance(values, Mapping):
        if names is not None:
            raise TypeError("Do not pass names=... when values is a mapping.")
        names = [str(n) for n in values.keys()]
        vals = [float(values[n]) for n in names]
    else:
        vals = [float(v) for v in np.asarray(values, dtype=float).ravel()]
        if names is None:
            names = [f"x{i}" for i in range(len(vals))]
        names = [str(n) for n in names]
        if len(names) != len(vals):
            raise ValueError(f"Got {len(names)} names for {len(vals)} values.")
    if not vals:
        raise ValueError("At least one parameter is required.")

    if errors is None:
        steps = [0.1 * abs(v) if v != 0.0 else 0.1 for v in vals]
    elif isinstance(errors, Mapping):
        unknown = [k for k in errors if k not in names]
        if unknown:
            raise KeyError(f"errors given for unknown parameters: {unknown}")
        steps = [
            float(errors[n]) if n in errors else (0.1 * abs(v) if v != 0.0 else 0.1)
            for n, v in zip(names, vals)
        ]
    else:
        steps = [float(e) for e in errors]
        if len(steps) != len(vals):
            raise ValueError(f"Got {len(steps)} errors for {len(vals)} values.")

    state = ParameterState()
    for n, v, e in zip(names, vals, steps):
        state.add(n, v, e)

    for n, (lo, hi) in (limits or {}).items():
        state.set_limits(n, lo, hi)

    if fixed is not None:
        items = fixed.items() if isinstance(fixed, Mapping) else ((n, True) for n in fixed)
        for n, flag in items:
            if flag:
                state.fix(n)
    return state


class FitSession:
    """Minimize a cost function and derive uncertainties around the minimum.

    The session owns the parameter state, the cost function (with its error
    definition) and the most recent FitResult. `run`, `hesse` and `minos`
    update that state and return the session, so calls chain:

        s = FitSession(cost, {"a": 0.0, "b": 0.0}).run().hesse().minos()

    The scans (`profile`, `contour`, `mnprofile`, `mncontour`) only read it.

    Notes
    -----
    `fcn` takes the parameter vector as a numpy array (or the values as
    positional arguments when wrapped in `CostFunction(..., arraycall=False)`).
    The error definition is 1 for least-squares costs and 0.5 for negative
    log-likelihoods; it scales all reported uncertainties.
    """

    def __init__(
        self,
        fcn: Union[Callable[..., float], CostFunction],
        values: Union[Sequence[float], Mapping[str, float]],
        *,
        names: Optional[Sequence[str]] = None,
        errors: Union[None, Sequence[float], Mapping[str, float]] = None,
        limits: Optional[Mapping[str, Tuple[Optional[float], Optional[float]]]] = None,
        fixed: Union[None, Iterable[str], Mapping[str, bool]] = None,
        grad: Optional[Callable[..., Any]] = None,
        errordef: Optional[float] = None,
        tolerance: float = 0.1,
        strategy: int = 1,
        precision: Optional[float] = None,
        method: str = "migrad",
        minimizer: Union[str, Minimizer] = "scipy",
    ):
        if isinstance(fcn, CostFunction):
            if grad is not None:
                raise TypeError("Pass grad=... to CostFunction, not to FitSession.")
            cost = fcn
        else:
            cost = CostFunction(fcn, grad=grad)
        if errordef is not None:
            cost.errordef = errordef
        self._cost = cost
        self._minimizer = get_minimizer(minimizer)
        self._state = _build_state(values, names, errors, limits, fixed)
        self._init_state = self._state.copy()
        self._fmin: Optional[FitResult] = None
        self._merrors: Dict[str, MinosResult] = {}

        self.tolerance = tolerance
        self.strategy = strategy
        self.precision = precision
        self.method = method

    # ---- configuration ----
    @property
    def tolerance(self) -> float:
        return self._tolerance

    @tolerance.setter
    def tolerance(self, value: float) -> None:
        value = float(value)
        if not (math.isfinite(value) and value > 0.0):
            raise ValueError(f"tolerance must be positive, got {value!r}.")
        self._tolerance = value

    @property
    def strategy(self) -> int:
        return self._strategy

    @strategy.setter
    def strategy(self, value: int) -> None:
        if int(value) != value or value < 0:
            raise ValueError(f"strategy must be a non-negative integer, got {value!r}.")
        self._strategy = int(value)

    @property
    def precision(self) -> Optional[float]:
        return self._precision

    @precision.setter
    def precision(self, value: Optional[float]) -> None:
        if value is not None:
            value = float(value)
            if not (math.isfinite(value) and value > 0.0):
                raise ValueError(f"precision must be positive or None, got {value!r}.")
        self._precision = value

    @property
    def method(self) -> str:
        return self._method

    @method.setter
    def method(self, value: str) -> None:
        if value not in _METHODS:
            raise ValueError(f"Unknown method {value!r}. Available: {_METHODS}")
        self._method = value

    @property
    def errordef(self) -> float:
        return self._cost.errordef

    @errordef.setter
    def errordef(self, value: float) -> None:
        self._cost.errordef = value

    @property
    def cost(self) -> CostFunction:
        return self._cost

    @property
    def minimizer(self) -> Minimizer:
        return self._minimizer

    # ---- parameter access ----
    @property
    def parameters(self) -> Tuple[str, ...]:
        return self._state.names

    @property
    def npar(self) -> int:
        return len(self._state)

    @property
    def nfit(self) -> int:
        return len(self._state.free_indices())

    @property
    def values(self) -> ValueView:
        return ValueView(self)

    @property
    def errors(self) -> ErrorView:
        return ErrorView(self)

    @property
    def fixed(self) -> FixedView:
        return FixedView(self)

    @property
    def limits(self) -> LimitView:
        return LimitView(self)

    @property
    def state(self) -> ParameterState:
        """Copy of the current parameter state."""
        return self._state.copy()

    def keypair(self, key: Key) -> Tuple[int, str]:
        return self._state.keypair(key)

    # ---- results ----
    @property
    def fmin(self) -> Optional[FitResult]:
        return self._fmin

    @property
    def merrors(self) -> Dict[str, MinosResult]:
        return dict(self._merrors)

    @property
    def valid(self) -> bool:
        return self._fmin is not None and self._fmin.valid

    @property
    def fval(self) -> Optional[float]:
        return None if self._fmin is None else self._fmin.value

    @property
    def nfcn(self) -> int:
        return self._cost.nfcn

    @property
    def covariance(self) -> Optional[np.ndarray]:
        return self.matrix()

    def _state_modified(self) -> bool:
        """True if the parameters were edited after the last result was stored."""
        return self._fmin is not None and list(self._state) != list(self._fmin.state)

    def reset(self) -> "FitSession":
        """Restore the initial parameter state and drop all results."""
        self._state = self._init_state.copy()
        self._fmin = None
        self._merrors = {}
        return self

    # ---- minimization ----
    def run(
        self,
        ncall: int = 0,
        *,
        strategy: Optional[int] = None,
        iterate: int = 1,
        use_simplex: bool = True,
    ) -> "FitSession":
        """Minimize from the current parameter state.

        Parameters
        ----------
        ncall : int
            Approximate call limit; 0 uses an adaptive default.
        strategy : int, optional
            0 is fast, 1 (default) balanced, 2 or more spends extra calls on
            reliable errors. Sticks to the session when given.
        iterate : int
            With iterate > 1, retry non-converged minimizations up to this
            many times (see `retry.robust_fit`).
        use_simplex : bool
            Run the simplex algorithm before each retry.

        The stored minimum and parameter state are replaced; previously
        computed Minos intervals are dropped.
        """
        if strategy is not None:
            self.strategy = strategy
        kwargs = dict(
            strategy=self._strategy,
            call_limit=int(ncall),
            tolerance=self._tolerance,
            precision=self._precision,
        )
        if self._method == "simplex":
            fmin = self._minimizer.minimize_simplex(self._cost, self._state, **kwargs)
        elif iterate > 1:
            fmin = robust_fit(
                self._minimizer,
                self._cost,
                self._state,
                iterate=int(iterate),
                use_simplex=use_simplex,
                **kwargs,
            )
        else:
            fmin = self._minimizer.minimize(self._cost, self._state, **kwargs)
        self._fmin = fmin
        self._state = fmin.state.copy()
        self._merrors = {}
        return self

    def hesse(self, ncall: int = 0, *, strategy: Optional[int] = None) -> "FitSession":
        """Compute the covariance matrix from second derivatives at the minimum.

        Runs the minimizer first if there is no valid minimum. If the
        parameters were edited since the last result, the matrix is computed
        at the edited point and the edm (hence validity) is re-evaluated there.
        A Hessian that is not positive definite leaves the result without
        covariance.
        """
        if strategy is not None:
            self.strategy = strategy
        stale = False
        if self._fmin is None or not self._fmin.valid:
            self.run()
        elif self._state_modified():
            stale = True
            self._fmin = result_at_state(self._cost, self._state, tolerance=self._tolerance)
        self._fmin = estimate_covariance(
            self._cost,
            self._fmin,
            call_limit=int(ncall),
            precision=self._precision,
            update_edm=stale,
        )
        self._state = self._fmin.state.copy()
        return self

    def minos(
        self,
        *parameters: Key,
        cl: Optional[float] = None,
        ncall: int = 0,
        strategy: Optional[int] = None,
    ) -> "FitSession":
        """Compute asymmetric profile-likelihood intervals.

        Parameters
        ----------
        *parameters : str or int
            Parameters to scan; default all free ones. Fixed parameters are
            skipped with a warning.
        cl : float, optional
            Confidence level: a probability in (0, 1), or a number of
            standard deviations when >= 1. None uses the error definition
            as is.
        ncall : int
            Call limit per parameter; 0 uses an adaptive default.

        Raises
        ------
        InvalidMinimumError
            If the minimum is still not valid after running hesse().
        """
        if strategy is not None:
            self.strategy = strategy
        if (
            self._fmin is None
            or not self._fmin.valid
            or not self._fmin.has_covariance
            or self._state_modified()
        ):
            self.hesse()
        if not self._fmin.valid:
            raise InvalidMinimumError("Function minimum is not valid.")

        state = self._state
        if not parameters:
            indices = state.free_indices()
        else:
            indices = []
            for key in parameters:
                i, name = state.keypair(key)
                if state[i].fixed:
                    warn(f"Cannot scan over fixed parameter {name!r}", UserWarning)
                    continue
                indices.append(i)

        self._merrors = minos_errors(
            self._minimizer,
            self._cost,
            self._fmin,
            indices,
            cl=cl,
            call_limit=int(ncall),
            strategy=self._strategy,
            tolerance=self._tolerance,
            precision=self._precision,
        )
        return self

    def matrix(self, correlation: bool = False) -> Optional[np.ndarray]:
        """Covariance (or correlation) matrix of the free parameters, or None."""
        if self._fmin is None or not self._fmin.has_covariance:
            return None
        cov = np.array(self._fmin.covariance, dtype=float)
        if correlation:
            d = np.sqrt(np.diag(cov))
            cov = cov / np.outer(d, d)
            np.fill_diagonal(cov, 1.0)
        return cov

    # ---- scans ----
    def profile(
        self,
        var: Key,
        *,
        size: int = 100,
        bound: Any = 2,
        grid: Optional[Sequence[float]] = None,
        subtract_min: bool = False,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Cost along one parameter, all others held at their current values.

        For several free parameters this is not the profile likelihood; see
        `mnprofile` for that. Returns (x, y).
        """
        index = self._state.keypair(var)[0]
        return scan.profile(
            self._cost, self._state, index,
            size=size, bound=bound, grid=grid, subtract_min=subtract_min,
        )

    def contour(
        self,
        x: Key,
        y: Key,
        *,
        size: Any = 50,
        bound: Any = 2,
        grid: Optional[Tuple[Sequence[float], Sequence[float]]] = None,
        subtract_min: bool = False,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Cost on a grid over two parameters, others held. Returns (xv, yv, zv)."""
        ix = self._state.keypair(x)[0]
        iy = self._state.keypair(y)[0]
        return scan.contour(
            self._cost, self._state, ix, iy,
            size=size, bound=bound, grid=grid, subtract_min=subtract_min,
        )

    def mnprofile(
        self,
        var: Key,
        *,
        size: int = 30,
        bound: Any = 2,
        grid: Optional[Sequence[float]] = None,
        subtract_min: bool = False,
        ncall: int = 0,
        iterate: int = 5,
        use_simplex: bool = True,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Profiled cost along one parameter. Returns (x, y, ok)."""
        index = self._state.keypair(var)[0]
        return scan.mnprofile(
            self._minimizer, self._cost, self._state, index,
            size=size, bound=bound, grid=grid, subtract_min=subtract_min,
            ncall=ncall, iterate=iterate, use_simplex=use_simplex,
            tolerance=self._tolerance, precision=self._precision,
        )

    def mncontour(
        self,
        x: Key,
        y: Key,
        *,
        cl: float = 0.68,
        size: int = 50,
        interpolated: int = 0,
    ) -> np.ndarray:
        """Boundary of the 2D confidence region, closed (first point repeated).

        Raises FixedParameterError for a fixed parameter and
        InvalidMinimumError without a valid minimum.
        """
        ix = self._state.keypair(x)[0]
        iy = self._state.keypair(y)[0]
        scan.require_free(self._state, ix, iy)
        if self._fmin is None or not self._fmin.valid:
            raise InvalidMinimumError("Function minimum is not valid.")
        return scan.mncontour(
            self._minimizer, self._cost, self._fmin, ix, iy,
            cl=cl, size=size, interpolated=interpolated,
            strategy=self._strategy, tolerance=self._tolerance,
        )

    # ---- reporting ----
    def correlated_values(self) -> Dict[str, Any]:
        """Parameter values as `uncertainties` numbers, correlated via the covariance.

        Fixed parameters get a zero standard deviation.
        """
        cov = self.matrix()
        if cov is None:
            raise RuntimeError("No covariance available; run hesse() first.")
        state = self._fmin.state  # type: ignore[union-attr]
        free = state.free_indices()
        corr = uncertainties.correlated_values([state.value_of(i) for i in free], cov)
        free_u = dict(zip((state[i].name for i in free), corr))
        return {
            p.name: free_u[p.name] if p.name in free_u else uncertainties.ufloat(p.value, 0.0)
            for p in state
        }

    def summary(self, digits: int = 4) -> str:
        """Return a human-readable summary string."""
        if self._fmin is None:
            lines = [f"FitSession(npar={self.npar}, not minimized)"]
            for p in self._state:
                tag = " (fixed)" if p.fixed else ""
                lines.append(f"  {p.name:>12s}: {p.value:.{digits}g}{tag}")
            return "\n".join(lines)
        lines = [self._fmin.summary(digits)]
        for me in self._merrors.values():
            lines.append(me.summary(digits))
        return "\n".join(lines)

    def __repr__(self) -> str:
        status = "not minimized" if self._fmin is None else ("valid" if self.valid else "invalid")
        return f"FitSession(parameters={self.parameters}, {status})"
