import numpy as np

from sensible_intervals import FitSession


def cost(p):
    a, b = p
    return (a - 2.0) ** 2 + (b - 3.0) ** 2 + 0.5 * (a - 2.0) * (b - 3.0)


session = FitSession(cost, {"a": 0.0, "b": 0.0}).run()
print(session.summary(digits=4))

session.hesse()
print("covariance:\n", session.matrix())
print("correlation:\n", session.matrix(correlation=True))

# Minos intervals equal the Hesse errors for an exactly quadratic cost.
session.minos()
for name, me in session.merrors.items():
    print(f"{name}: {me.lower:+.4f} / {me.upper:+.4f}  (hesse {session.errors[name]:.4f})")

assert np.allclose(session.values, [2.0, 3.0], atol=1e-3)
