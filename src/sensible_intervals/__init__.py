"""sensible_intervals public API."""
from .cost import CostFunction, least_squares, neg_loglike
from .errors import (
    DuplicateNameError,
    FixedParameterError,
    IndexOutOfRangeError,
    InvalidMinimumError,
    UnknownParameterError,
)
from .params import Parameter, ParameterState
from .result import FitResult, MinosResult
from .session import FitSession
from .backends import ScipyMinimizer, get_minimizer

__all__ = [
    "FitSession",
    "CostFunction",
    "least_squares",
    "neg_loglike",
    "Parameter",
    "ParameterState",
    "FitResult",
    "MinosResult",
    "ScipyMinimizer",
    "get_minimizer",
    "DuplicateNameError",
    "FixedParameterError",
    "IndexOutOfRangeError",
    "InvalidMinimumError",
    "UnknownParameterError",
]
