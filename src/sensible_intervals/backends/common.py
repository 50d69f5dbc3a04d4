from __future__ import annotations

from typing import List, Optional, Protocol, Tuple

from ..cost import CostFunction
from ..params import ParameterState
from ..result import FitResult


class Minimizer(Protocol):
    """Minimizer protocol: minimize a cost over a parameter state.

    Implementations never mutate the `state` they are given; the returned
    FitResult carries its own copy.
    """

    name: str

    def minimize(
        self,
        cost: CostFunction,
        state: ParameterState,
        *,
        strategy: int,
        call_limit: int,
        tolerance: float,
        precision: Optional[float] = None,
    ) -> FitResult: ...

    def minimize_simplex(
        self,
        cost: CostFunction,
        state: ParameterState,
        *,
        strategy: int,
        call_limit: int,
        tolerance: float,
        precision: Optional[float] = None,
    ) -> FitResult: ...

    def trace_contour(
        self,
        cost: CostFunction,
        fmin: FitResult,
        ix: int,
        iy: int,
        *,
        num_points: int,
        strategy: int,
        tolerance: float,
        call_limit: int = 0,
    ) -> List[Tuple[float, float]]: ...
