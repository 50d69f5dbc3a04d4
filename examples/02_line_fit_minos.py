import numpy as np

from sensible_intervals import FitSession, least_squares


def line(x, m, b):
    return m * x + b


rng = np.random.default_rng(0)
x = np.linspace(0, 10, 20)
sigma = 1.2
y = line(x, 2.0, -1.0) + rng.normal(0, sigma, size=x.size)

cost = least_squares(line, x, y, sigma)
session = FitSession(cost, {"m": 1.0, "b": 0.0}, limits={"m": (-10, 10)})
session.run().hesse().minos()

print(session.summary(digits=4))

# 2-sigma intervals come from a rescaled error definition.
session.minos("m", cl=2)
lo, hi = session.merrors["m"].interval
print(f"m in [{lo:.4f}, {hi:.4f}] at cl=2")

u = session.correlated_values()
print("m + b =", u["m"] + u["b"])
