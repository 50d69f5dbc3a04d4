import numpy as np
import pytest

from sensible_intervals import (
    CostFunction,
    FitSession,
    InvalidMinimumError,
    UnknownParameterError,
    least_squares,
    neg_loglike,
)


def quadratic(p):
    a, b = p
    return (a - 2.0) ** 2 + (b - 3.0) ** 2


def correlated(p):
    a, b = p
    return a**2 + b**2 + a * b


def test_defaults_from_values():
    s = FitSession(quadratic, [0.0, 5.0])
    assert s.parameters == ("x0", "x1")
    assert s.npar == 2
    assert s.nfit == 2
    assert list(s.errors) == [0.1, 0.5]
    assert s.fmin is None
    assert not s.valid
    assert s.fval is None
    assert s.matrix() is None


def test_values_mapping_and_names():
    s = FitSession(quadratic, {"a": 0.0, "b": 0.0})
    assert s.parameters == ("a", "b")
    with pytest.raises(TypeError):
        FitSession(quadratic, {"a": 0.0, "b": 0.0}, names=["x", "y"])
    with pytest.raises(ValueError):
        FitSession(quadratic, [0.0, 0.0], names=["a"])


def test_invalid_configuration_rejected():
    with pytest.raises(ValueError):
        FitSession(quadratic, [0.0, 0.0], strategy=-1)
    with pytest.raises(ValueError):
        FitSession(quadratic, [0.0, 0.0], tolerance=0.0)
    with pytest.raises(ValueError):
        FitSession(quadratic, [0.0, 0.0], method="newton")
    with pytest.raises(ValueError):
        FitSession(quadratic, [0.0, 0.0], minimizer="nope")
    with pytest.raises(ValueError):
        FitSession(quadratic, [0.0, 0.0], errordef=0.0)


def test_run_finds_minimum():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run()
    assert s.valid
    assert s.fval == pytest.approx(0.0, abs=1e-6)
    assert s.values["a"] == pytest.approx(2.0, abs=1e-3)
    assert s.values["b"] == pytest.approx(3.0, abs=1e-3)
    assert s.fmin.edm <= s.fmin.edm_goal
    assert s.nfcn > 0


def test_hesse_covariance_is_identity():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().hesse()
    assert s.fmin.has_covariance
    np.testing.assert_allclose(s.matrix(), np.eye(2), atol=1e-3)
    assert s.errors["a"] == pytest.approx(1.0, abs=1e-3)
    corr = s.matrix(correlation=True)
    np.testing.assert_array_equal(np.diag(corr), [1.0, 1.0])


def test_hesse_without_run_minimizes_first():
    s = FitSession(quadratic, [0.0, 0.0]).hesse()
    assert s.valid
    assert s.values[0] == pytest.approx(2.0, abs=1e-3)


def test_correlation_matrix():
    s = FitSession(correlated, [1.0, 1.0], names=["a", "b"]).run().hesse()
    cov = s.matrix()
    np.testing.assert_allclose(cov, [[4 / 3, -2 / 3], [-2 / 3, 4 / 3]], atol=1e-3)
    corr = s.matrix(correlation=True)
    assert corr[0, 1] == pytest.approx(-0.5, abs=1e-3)


def test_errordef_scales_errors():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"], errordef=0.5).run().hesse()
    np.testing.assert_allclose(s.matrix(), 0.5 * np.eye(2), atol=1e-3)
    s.minos("a")
    me = s.merrors["a"]
    assert me.upper == pytest.approx(np.sqrt(0.5), abs=1e-2)
    assert me.lower == pytest.approx(-np.sqrt(0.5), abs=1e-2)


def test_minos_matches_hesse_for_quadratic():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().hesse().minos()
    assert set(s.merrors) == {"a", "b"}
    for name in ("a", "b"):
        me = s.merrors[name]
        assert me.is_valid
        assert me.lower == pytest.approx(-s.errors[name], abs=1e-2)
        assert me.upper == pytest.approx(s.errors[name], abs=1e-2)
        assert me.lower <= 0.0 <= me.upper
    lo, hi = s.merrors["a"].interval
    assert lo == pytest.approx(1.0, abs=1e-2)
    assert hi == pytest.approx(3.0, abs=1e-2)
    assert s.errordef == 1.0


def test_minos_confidence_level():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().minos("b", cl=0.68)
    # 2 dof quantile for 0.68
    expected = np.sqrt(-2.0 * np.log(0.32))
    assert s.merrors["b"].upper == pytest.approx(expected, abs=1e-2)
    assert s.errordef == 1.0


def test_minos_skips_fixed_with_warning():
    s = FitSession(quadratic, [0.0, 3.0], names=["a", "b"], fixed=["b"]).run()
    assert s.nfit == 1
    assert s.matrix().shape == (1, 1)
    with pytest.warns(UserWarning):
        s.minos("a", "b")
    assert set(s.merrors) == {"a"}


def test_minos_unknown_parameter():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run()
    with pytest.raises(UnknownParameterError):
        s.minos("c")


def test_minos_on_invalid_minimum_raises():
    # stationary point is a maximum, so no covariance can be formed
    s = FitSession(lambda p: -p[0] ** 2 - p[1] ** 2, [0.0, 0.0])
    with pytest.warns(UserWarning):
        with pytest.raises(InvalidMinimumError):
            s.minos()


def test_run_clears_minos_results():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().minos("a")
    assert "a" in s.merrors
    s.run()
    assert s.merrors == {}


def test_views_write_through():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"])
    s.values["a"] = 1.5
    s.values[-1] = 2.5
    assert list(s.values) == [1.5, 2.5]
    np.testing.assert_array_equal(np.asarray(s.values), [1.5, 2.5])
    s.errors[0:2] = [0.3, 0.4]
    assert s.errors.to_dict() == {"a": 0.3, "b": 0.4}
    s.fixed["b"] = True
    assert s.nfit == 1
    s.limits["a"] = (0.0, 1.0)
    assert s.values["a"] == 1.0
    assert s.limits["a"] == (0.0, 1.0)
    s.limits["a"] = None
    assert s.limits["a"] == (-np.inf, np.inf)


def test_limits_and_fixed_from_constructor():
    s = FitSession(
        quadratic,
        {"a": 0.5, "b": 0.0},
        limits={"a": (0.0, 1.0)},
        fixed={"b": True},
    ).run()
    assert s.values["a"] == pytest.approx(1.0, abs=1e-4)
    assert s.values["b"] == 0.0


def test_reset_restores_initial_state():
    s = FitSession(quadratic, [0.0, 0.0]).run()
    s.reset()
    assert list(s.values) == [0.0, 0.0]
    assert s.fmin is None


def test_simplex_method():
    s = FitSession(quadratic, [0.0, 0.0], method="simplex", tolerance=0.01).run()
    assert s.fmin.method == "simplex"
    assert s.values[0] == pytest.approx(2.0, abs=0.05)
    assert s.values[1] == pytest.approx(3.0, abs=0.05)
    assert not s.fmin.has_covariance


def test_analytic_gradient_is_used():
    def grad(p):
        a, b = p
        return np.array([2.0 * (a - 2.0), 2.0 * (b - 3.0)])

    cost = CostFunction(quadratic, grad=grad)
    s = FitSession(cost, [0.0, 0.0]).run()
    assert s.valid
    assert cost.ngrad > 0
    with pytest.raises(TypeError):
        FitSession(cost, [0.0, 0.0], grad=grad)


def test_least_squares_line_matches_linear_algebra():
    rng = np.random.default_rng(1)
    x = np.linspace(0.0, 5.0, 30)
    sigma = 0.5
    y = 2.0 * x - 1.0 + rng.normal(0.0, sigma, size=x.size)

    cost = least_squares(lambda x, m, b: m * x + b, x, y, sigma)
    s = FitSession(cost, {"m": 1.0, "b": 0.0}).run().hesse()

    A = np.stack([x, np.ones_like(x)], axis=1) / sigma
    cov = np.linalg.inv(A.T @ A)
    best = cov @ A.T @ (y / sigma)
    np.testing.assert_allclose(s.values, best, atol=1e-4)
    np.testing.assert_allclose(s.matrix(), cov, rtol=1e-3)


def test_neg_loglike_mean_error():
    from scipy.stats import norm

    rng = np.random.default_rng(2)
    data = rng.normal(1.0, 1.0, size=100)
    cost = neg_loglike(lambda d, mu: norm.logpdf(d, mu, 1.0), data)
    assert cost.errordef == 0.5

    s = FitSession(cost, {"mu": 0.0}).run().hesse()
    assert s.values["mu"] == pytest.approx(np.mean(data), abs=1e-4)
    assert s.errors["mu"] == pytest.approx(0.1, rel=1e-3)


def test_correlated_values():
    uncertainties = pytest.importorskip("uncertainties")

    s = FitSession(lambda p: correlated(p[:2]), [1.0, 1.0, 5.0], names=["a", "b", "c"], fixed=["c"]).run().hesse()
    u = s.correlated_values()
    assert set(u) == {"a", "b", "c"}
    assert u["c"].std_dev == 0.0
    cov = np.array(uncertainties.covariance_matrix([u["a"], u["b"]]), dtype=float)
    np.testing.assert_allclose(cov, s.matrix(), rtol=1e-6, atol=1e-9)


def test_summary_mentions_parameters():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"])
    assert "not minimized" in s.summary()
    s.run().minos("a")
    text = s.summary()
    assert "a" in text and "MinosResult" in text


def test_hesse_keeps_parameter_edits_made_after_run():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run()
    b_min = s.values["b"]
    s.values["a"] = 10.0
    s.fixed["b"] = True
    s.hesse()
    assert s.values["a"] == 10.0
    assert s.values["b"] == b_min
    assert list(s.fixed) == [False, True]
    np.testing.assert_allclose(s.matrix(), [[1.0]], atol=1e-3)
    # far from the minimum of a, so the edm check fails
    assert not s.valid
    assert s.fmin.edm > s.fmin.edm_goal


def test_hesse_after_fixing_at_minimum_stays_valid():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().hesse()
    s.fixed["b"] = True
    s.hesse()
    assert s.valid
    assert s.fixed["b"]
    assert s.matrix().shape == (1, 1)


def test_minos_skips_parameter_fixed_after_fit():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().hesse()
    s.fixed["b"] = True
    with pytest.warns(UserWarning):
        s.minos("b")
    assert "b" not in s.merrors
    assert s.fixed["b"]

    s.minos()
    assert set(s.merrors) == {"a"}
    assert s.merrors["a"].upper == pytest.approx(1.0, abs=1e-2)


def test_minos_after_moving_away_from_minimum():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().hesse()
    s.values["a"] = 5.0
    with pytest.raises(InvalidMinimumError):
        s.minos("a")
    assert s.values["a"] == 5.0

    s.run().minos("a")
    assert s.values["a"] == pytest.approx(2.0, abs=1e-3)
    assert s.merrors["a"].is_valid


def test_minos_stops_at_limits():
    s = FitSession(quadratic, [2.0, 3.0], names=["a", "b"], limits={"a": (1.5, 2.5)})
    s.run().hesse().minos("a")
    me = s.merrors["a"]
    assert me.at_lower_limit and me.at_upper_limit
    assert not me.lower_valid and not me.upper_valid
    assert me.upper == pytest.approx(0.5, abs=1e-3)
    assert me.lower == pytest.approx(-0.5, abs=1e-3)


def test_minos_flags_new_minimum():
    def two_wells(p):
        a, b = p
        return min(a * a, (a - 1.5) ** 2 - 1.0) + b * b

    s = FitSession(two_wells, [0.0, 0.0], names=["a", "b"]).run()
    assert s.valid
    s.minos("a")
    me = s.merrors["a"]
    assert me.upper_new_min
    assert not me.upper_valid
    assert not me.lower_new_min
    assert me.lower == pytest.approx(-1.0, abs=1e-2)


def test_minos_call_budget():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run()
    s.minos("a", ncall=5)
    me = s.merrors["a"]
    assert me.at_lower_max_fcn and me.at_upper_max_fcn
    assert not me.is_valid
