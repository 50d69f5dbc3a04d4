from __future__ import annotations

import contextlib
import math
from typing import Any, Callable, Iterator, Optional

import numpy as np

__all__ = ["CostFunction", "least_squares", "neg_loglike"]


class CostFunction:
    """Scalar cost function of a parameter vector.

    Wraps a user callable, counts evaluations and carries the error
    definition: the rise of the cost that corresponds to one standard
    deviation (1 for least-squares, 0.5 for a negative log-likelihood).
    """

    def __init__(
        self,
        fcn: Callable[..., float],
        grad: Optional[Callable[..., Any]] = None,
        errordef: float = 1.0,
        arraycall: bool = True,
    ):
        self.fcn = fcn
        self.grad_fcn = grad
        self.arraycall = bool(arraycall)
        self.nfcn = 0
        self.ngrad = 0
        self._errordef = 1.0
        self.errordef = errordef

    @property
    def errordef(self) -> float:
        return self._errordef

    @errordef.setter
    def errordef(self, value: float) -> None:
        value = float(value)
        if not (math.isfinite(value) and value > 0.0):
            raise ValueError(f"errordef must be positive, got {value!r}.")
        self._errordef = value

    @property
    def has_grad(self) -> bool:
        return self.grad_fcn is not None

    def __call__(self, x: np.ndarray) -> float:
        self.nfcn += 1
        x = np.asarray(x, dtype=float)
        if self.arraycall:
            return float(self.fcn(x))
        return float(self.fcn(*x))

    def grad(self, x: np.ndarray) -> np.ndarray:
        if self.grad_fcn is None:
            raise RuntimeError("Cost function has no analytic gradient.")
        self.ngrad += 1
        x = np.asarray(x, dtype=float)
        g = self.grad_fcn(x) if self.arraycall else self.grad_fcn(*x)
        return np.asarray(g, dtype=float).reshape(x.shape)

    @contextlib.contextmanager
    def scaled_errordef(self, factor: float) -> Iterator["CostFunction"]:
        """Temporarily multiply the error definition by `factor`.

        The previous value is restored on exit, including exits by exception.
        """
        saved = self._errordef
        self.errordef = saved * float(factor)
        try:
            yield self
        finally:
            self._errordef = saved


def least_squares(
    model: Callable[..., Any],
    x: Any,
    y: Any,
    yerr: Any = None,
) -> CostFunction:
    """Chi-square cost of `model(x, *params)` against data (errordef 1)."""
    y = np.asarray(y, dtype=float)
    if yerr is None:
        sig = None
    else:
        sig = np.broadcast_to(np.asarray(yerr, dtype=float), y.shape)
        if np.any(sig <= 0.0):
            raise ValueError("yerr must be strictly positive.")

    def chi2(params: np.ndarray) -> float:
        y_model = np.asarray(model(x, *params), dtype=float)
        y_model = np.broadcast_to(y_model, y.shape)
        r = y_model - y
        if sig is not None:
            r = r / sig
        return float(np.sum(r * r))

    return CostFunction(chi2, errordef=1.0)


def neg_loglike(logpdf: Callable[..., Any], data: Any) -> CostFunction:
    """Unbinned negative log-likelihood of `logpdf(data, *params)` (errordef 0.5)."""
    data = np.asarray(data, dtype=float)

    def nll(params: np.ndarray) -> float:
        ll = np.asarray(logpdf(data, *params), dtype=float)
        total = float(np.sum(ll))
        if not math.isfinite(total):
            return float("inf")
        return -total

    return CostFunction(nll, errordef=0.5)
