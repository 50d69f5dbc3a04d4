from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

__all__ = ["ValueView", "ErrorView", "FixedView", "LimitView"]


class _ParamView:
    """Sequence-like view of one field of a session's parameters.

    Supports:
        view["a"], view[0], view[-1], view[0:2], view[["a", "b"]]
        view["a"] = 1.0  (writes through to the session's parameter state)
    """

    def __init__(self, session: Any):
        self._session = session

    @property
    def _state(self):
        return self._session._state

    # ---- subclass hooks ----
    def _get(self, i: int) -> Any:
        raise NotImplementedError

    def _set(self, i: int, value: Any) -> None:
        raise NotImplementedError

    # ---- indexing ----
    def _indices(self, key: Any) -> List[int]:
        n = len(self._state)
        if isinstance(key, slice):
            return list(range(n))[key]
        if isinstance(key, (tuple, list)):
            return [self._index(k) for k in key]
        return [self._index(key)]

    def _index(self, key: Any) -> int:
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool) and key < 0:
            key = len(self._state) + int(key)
        return self._state.keypair(key)[0]

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, (slice, tuple, list)):
            return [self._get(i) for i in self._indices(key)]
        return self._get(self._index(key))

    def __setitem__(self, key: Any, value: Any) -> None:
        indices = self._indices(key)
        if isinstance(key, (slice, tuple, list)):
            values = list(value)
            if len(values) != len(indices):
                raise ValueError(
                    f"Expected {len(indices)} values, got {len(values)}."
                )
            for i, v in zip(indices, values):
                self._set(i, v)
        else:
            self._set(indices[0], value)

    def __len__(self) -> int:
        return len(self._state)

    def __iter__(self) -> Iterator[Any]:
        for i in range(len(self._state)):
            yield self._get(i)

    def __eq__(self, other: object) -> bool:
        try:
            return list(self) == list(other)  # type: ignore[call-overload]
        except TypeError:
            return NotImplemented

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        return np.array(list(self), dtype=dtype)

    def to_dict(self) -> Dict[str, Any]:
        return {p.name: self._get(i) for i, p in enumerate(self._state)}

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"{type(self).__name__}({inner})"


class ValueView(_ParamView):
    def _get(self, i: int) -> float:
        return self._state[i].value

    def _set(self, i: int, value: float) -> None:
        self._state.set_value(i, value)


class ErrorView(_ParamView):
    def _get(self, i: int) -> float:
        return self._state[i].step

    def _set(self, i: int, value: float) -> None:
        self._state.set_error(i, value)


class FixedView(_ParamView):
    def _get(self, i: int) -> bool:
        return self._state[i].fixed

    def _set(self, i: int, value: bool) -> None:
        if value:
            self._state.fix(i)
        else:
            self._state.unfix(i)


class LimitView(_ParamView):
    def _get(self, i: int) -> Tuple[float, float]:
        return self._state[i].bounds

    def _set(self, i: int, value: Optional[Tuple[Optional[float], Optional[float]]]) -> None:
        if value is None:
            self._state.remove_limits(i)
            return
        lo, hi = value
        self._state.set_limits(i, lo, hi)
