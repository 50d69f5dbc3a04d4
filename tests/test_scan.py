import numpy as np
import pytest

from sensible_intervals import (
    FitSession,
    FixedParameterError,
    InvalidMinimumError,
    ScipyMinimizer,
)


def quadratic(p):
    a, b = p
    return (a - 2.0) ** 2 + (b - 3.0) ** 2


class SpyMinimizer(ScipyMinimizer):
    name = "spy"

    def __init__(self):
        super().__init__()
        self.ncalls = 0

    def minimize(self, *args, **kwargs):
        self.ncalls += 1
        return super().minimize(*args, **kwargs)

    def minimize_simplex(self, *args, **kwargs):
        self.ncalls += 1
        return super().minimize_simplex(*args, **kwargs)

    def trace_contour(self, *args, **kwargs):
        self.ncalls += 1
        return super().trace_contour(*args, **kwargs)


class BrokenContour(ScipyMinimizer):
    def trace_contour(self, *args, **kwargs):
        raise RuntimeError("boom")


@pytest.fixture
def session():
    return FitSession(quadratic, [0.0, 0.0], names=["a", "b"]).run().hesse()


def test_profile(session):
    x, y = session.profile("a", size=5, bound=2)
    np.testing.assert_allclose(x, [0.0, 1.0, 2.0, 3.0, 4.0], atol=1e-3)
    np.testing.assert_allclose(y, (x - 2.0) ** 2, atol=1e-6)

    x, y = session.profile("a", grid=[1.0, 2.0, 4.0], subtract_min=True)
    assert np.min(y) == 0.0
    assert y[2] == pytest.approx(4.0, abs=1e-6)


def test_profile_rejects_fixed(session):
    session.fixed["b"] = True
    with pytest.raises(FixedParameterError):
        session.profile("b")


def test_contour_grid(session):
    xv, yv, zv = session.contour("a", "b", size=(4, 5), bound=((0.0, 3.0), (1.0, 5.0)))
    assert xv.shape == (4,)
    assert yv.shape == (5,)
    assert zv.shape == (4, 5)
    expected = (xv[:, None] - 2.0) ** 2 + (yv[None, :] - 3.0) ** 2
    np.testing.assert_allclose(zv, expected, atol=1e-6)

    _, _, zv = session.contour("a", "b", size=6, subtract_min=True)
    assert zv.shape == (6, 6)
    assert np.min(zv) == 0.0


def test_contour_does_not_change_state(session):
    before = list(session.values)
    session.contour("a", "b", size=3)
    session.profile("b", size=3)
    assert list(session.values) == before


def test_mnprofile(session):
    x, y, ok = session.mnprofile("a", size=5, bound=(1.0, 3.0))
    assert ok.all()
    np.testing.assert_allclose(y, (x - 2.0) ** 2, atol=1e-5)
    assert session.values["b"] == pytest.approx(3.0, abs=1e-3)
    assert not session.fixed["a"]


def test_mncontour_is_closed_ellipse(session):
    pts = session.mncontour("a", "b", cl=0.68, size=8)
    assert pts.shape == (9, 2)
    np.testing.assert_array_equal(pts[0], pts[-1])
    radius = np.hypot(pts[:, 0] - 2.0, pts[:, 1] - 3.0)
    np.testing.assert_allclose(radius, np.sqrt(-2.0 * np.log(0.32)), atol=1e-2)
    assert session.errordef == 1.0
    assert session.fmin.has_covariance


def test_mncontour_warns_on_interpolation(session):
    with pytest.warns(UserWarning):
        pts = session.mncontour("a", "b", size=4, interpolated=10)
    assert pts.shape == (5, 2)


def test_mncontour_fixed_parameter_checked_before_minimizing():
    spy = SpyMinimizer()
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"], fixed=["b"], minimizer=spy)
    with pytest.raises(FixedParameterError):
        s.mncontour("a", "b")
    assert spy.ncalls == 0


def test_mnprofile_fixed_parameter_checked_before_minimizing():
    spy = SpyMinimizer()
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"], fixed=["b"], minimizer=spy)
    with pytest.raises(FixedParameterError):
        s.mnprofile("b", size=3)
    assert spy.ncalls == 0


def test_mncontour_requires_valid_minimum():
    s = FitSession(quadratic, [0.0, 0.0], names=["a", "b"])
    with pytest.raises(InvalidMinimumError):
        s.mncontour("a", "b")


def test_mncontour_same_parameter_rejected(session):
    with pytest.raises(ValueError):
        session.mncontour("a", "a")


def test_errordef_restored_when_contour_fails():
    s = FitSession(quadratic, [0.0, 0.0], minimizer=BrokenContour()).run()
    with pytest.raises(RuntimeError):
        s.mncontour(0, 1, cl=2)
    assert s.errordef == 1.0


def test_scaled_errordef_restores_on_error(session):
    cost = session.cost
    with pytest.raises(KeyError):
        with cost.scaled_errordef(3.0):
            assert cost.errordef == 3.0
            raise KeyError("x")
    assert cost.errordef == 1.0
