import numpy as np
import pytest

from sensible_intervals import (
    DuplicateNameError,
    IndexOutOfRangeError,
    ParameterState,
    UnknownParameterError,
)


def _state():
    s = ParameterState()
    s.add("a", 1.0, 0.1)
    s.add("b", 2.0, 0.2)
    s.add("c", 3.0, 0.3)
    return s


def test_add_and_address_by_name_or_index():
    s = _state()
    assert len(s) == 3
    assert s.names == ("a", "b", "c")
    assert s.keypair("b") == (1, "b")
    assert s.keypair(2) == (2, "c")
    assert s[0].value == 1.0
    assert s["c"].step == 0.3
    assert "a" in s and "z" not in s


def test_duplicate_name_rejected():
    s = _state()
    with pytest.raises(DuplicateNameError):
        s.add("a", 0.0)


def test_unknown_keys():
    s = _state()
    with pytest.raises(UnknownParameterError):
        s.keypair("z")
    with pytest.raises(UnknownParameterError):
        s.keypair(3)
    with pytest.raises(IndexOutOfRangeError):
        s.set_value(5, 1.0)
    with pytest.raises(TypeError):
        s.keypair(1.5)


def test_step_must_be_positive():
    s = _state()
    with pytest.raises(ValueError):
        s.add("d", 0.0, 0.0)
    with pytest.raises(ValueError):
        s.set_error("a", -1.0)


def test_fix_and_free_indices():
    s = _state()
    s.fix("b")
    assert s.free_indices() == [0, 2]
    assert s.free_names() == ["a", "c"]
    np.testing.assert_array_equal(s.fixed, [False, True, False])
    s.unfix(1)
    assert s.free_indices() == [0, 1, 2]


def test_limits_clamp_value_and_can_be_removed():
    s = _state()
    s.set_limits("a", 2.0, 5.0)
    assert s["a"].value == 2.0
    assert s["a"].bounds == (2.0, 5.0)
    assert s.has_limits([0])

    s.set_upper_limit("b", 1.5)
    assert s["b"].value == 1.5
    assert s["b"].lower is None

    s.set_limits("c", None, np.inf)
    assert not s["c"].has_limits

    s.remove_limits("a")
    assert s["a"].bounds == (-np.inf, np.inf)

    with pytest.raises(ValueError):
        s.set_limits("a", 3.0, 3.0)


def test_copy_is_independent():
    s = _state()
    t = s.copy()
    t.set_value("a", 10.0)
    t.fix("b")
    assert s["a"].value == 1.0
    assert not s["b"].fixed


def test_bounds_arrays():
    s = _state()
    s.set_lower_limit("b", 0.0)
    lo, hi = s.bounds()
    np.testing.assert_array_equal(lo, [-np.inf, 0.0, -np.inf])
    np.testing.assert_array_equal(hi, [np.inf, np.inf, np.inf])
