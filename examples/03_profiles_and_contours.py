import numpy as np
from scipy.stats import norm

from sensible_intervals import FitSession, neg_loglike

rng = np.random.default_rng(1)
data = rng.normal(0.5, 2.0, size=200)

cost = neg_loglike(lambda d, mu, s: norm.logpdf(d, mu, s), data)
session = FitSession(cost, {"mu": 0.0, "sigma": 1.0}, limits={"sigma": (0.0, None)})
session.run(iterate=5).hesse()
print(session.summary(digits=4))

# cost along mu with sigma held, then with sigma re-minimized
x, y = session.profile("mu", size=7, subtract_min=True)
xp, yp, ok = session.mnprofile("mu", size=7, subtract_min=True)
for xi, yi, ypi, oki in zip(x, y, yp, ok):
    print(f"mu={xi:+.3f}  fixed: {yi:.3f}  profiled: {ypi:.3f}  ok={oki}")

xv, yv, zv = session.contour("mu", "sigma", size=5, subtract_min=True)
print("grid shape:", zv.shape)

pts = session.mncontour("mu", "sigma", cl=0.68, size=12)
print("68% contour (closed):")
for mu, s in pts:
    print(f"  {mu:+.4f} {s:.4f}")
