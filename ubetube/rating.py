"""
Power-law rating curve Q = a * h^b and its calibration fit.

Algorithm
---------
Levenberg–Marquardt on the residuals r_i = Q_i - a * h_i^b, starting from the
initial guess (a, b) = (1, 1):
1) Build the Jacobian J = [h^b, a * h^b * ln h] at the current iterate.
2) Stop if the Gauss–Newton step for J is negligible relative to (a, b), or if
   it would lower the residual sum by less than ``tol`` of its value.
3) Solve (JᵀJ + λ diag(JᵀJ)) δ = Jᵀr. Accept the step when it lowers the
   residual sum (λ /= 10), otherwise reject it and raise the damping (λ *= 10).
4) A point where no damped step lowers the residual sum is a local minimum to
   machine precision and is returned as converged.

Numerical guards:
- h = 0 contributes 0 to both Jacobian columns for b > 0 (limit of h^b ln h).
- With a zero height present, trial steps into b <= 0 are rejected (0^b is
  undefined there). If the fit is pinned against that boundary it fails.
- A converged a <= 0 fails; discharge must rise with height.
- Non-finite trial predictions count as rejected steps.

There is no global-optimum guarantee. Power-law fits are sensitive to the
starting values; a caller may retry with another initial guess.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Sequence, Tuple
import logging
import math

import numpy as np

from .errors import ConvergenceError, InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_GUESS: Tuple[float, float] = (1.0, 1.0)

_LAMBDA_START = 1e-3
_LAMBDA_MIN = 1e-12
_LAMBDA_MAX = 1e16


@dataclass(frozen=True)
class CalibrationSample:
    baseline_height_mm: float   # slot bottom relative to the transducer
    raw_height_mm: float        # transducer reading
    discharge_lpm: float        # measured outflow [L/min]

    @property
    def height_cm(self) -> float:
        """Water height above the slot bottom [cm]."""
        return (self.raw_height_mm - self.baseline_height_mm) / 10.0


@dataclass(frozen=True)
class RatingCurve:
    """Fitted rating curve ``Q = a * h^b`` (h in cm, Q in L/min)."""

    a: float
    b: float

    def __post_init__(self):
        if not (math.isfinite(self.a) and math.isfinite(self.b)):
            raise InvalidInputError(f"Rating curve parameters must be finite (a={self.a}, b={self.b})")
        if self.a <= 0:
            raise InvalidInputError(f"Rating curve coefficient a must be positive, got {self.a}")

    def evaluate(self, height_cm: float) -> float:
        """Discharge at ``height_cm``; no outflow at or below the slot bottom."""
        h = float(height_cm)
        if math.isnan(h):
            return math.nan
        if h <= 0.0:
            return 0.0
        return self.a * h ** self.b

    def evaluate_many(self, heights_cm) -> np.ndarray:
        """Vectorised :meth:`evaluate` with the same clamp; NaN propagates."""
        h = np.atleast_1d(np.asarray(heights_cm, dtype=float))
        out = np.where(np.isnan(h), np.nan, 0.0)
        pos = h > 0.0
        out[pos] = self.a * np.power(h[pos], self.b)
        return out

    def label(self, mathtext: bool = False) -> str:
        if mathtext:
            return rf"$Q = {self.a:.3g}\,h^{{{self.b:.3g}}}$"
        return f"Q = {self.a:.3g}*h^{self.b:.3g}"

    def as_dict(self) -> Dict[str, float]:
        return {"a": float(self.a), "b": float(self.b)}


# The fitted parameters are the rating curve itself.
RatingCurveParameters = RatingCurve


@dataclass(frozen=True)
class RatingFit:
    curve: RatingCurve
    n_points: int
    iterations: int
    rss: float          # residual sum of squares at the solution
    sigma: float        # residual standard error; NaN when n_points <= 2
    stderr_a: float
    stderr_b: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "a": self.curve.a,
            "b": self.curve.b,
            "stderr_a": self.stderr_a,
            "stderr_b": self.stderr_b,
            "sigma": self.sigma,
            "rss": self.rss,
            "n_points": self.n_points,
            "iterations": self.iterations,
            "label": self.curve.label(),
        }


def calibration_arrays(samples: Iterable[CalibrationSample]) -> Tuple[np.ndarray, np.ndarray]:
    """Validated (h_cm, Q) arrays for the fitter."""
    samples = list(samples)
    if not samples:
        raise InvalidInputError("No calibration samples provided")
    if len(samples) < 2:
        raise InvalidInputError("At least 2 calibration samples are needed to fit a and b")
    h = np.array([s.height_cm for s in samples], dtype=float)
    q = np.array([s.discharge_lpm for s in samples], dtype=float)

    bad = ~(np.isfinite(h) & np.isfinite(q))
    if bad.any():
        i = int(np.flatnonzero(bad)[0])
        raise InvalidInputError(f"Calibration sample {i} has a non-finite height or discharge")
    if (q < 0).any():
        i = int(np.flatnonzero(q < 0)[0])
        raise InvalidInputError(f"Calibration sample {i} has negative discharge ({q[i]:.4g} L/min)")
    if (h < 0).any():
        # a negative base under a fractional exponent has no real power
        i = int(np.flatnonzero(h < 0)[0])
        raise InvalidInputError(
            f"Calibration sample {i} lies below the slot bottom (h = {h[i]:.4g} cm)"
        )
    return h, q


def _predict(h: np.ndarray, a: float, b: float) -> np.ndarray:
    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        return a * np.power(h, b)


def _jacobian(h: np.ndarray, a: float, b: float) -> np.ndarray:
    hb = np.power(h, b)
    log_h = np.zeros_like(h)
    np.log(h, out=log_h, where=h > 0)
    return np.column_stack([hb, a * hb * log_h])


def _finish(h: np.ndarray, a: float, b: float, rss: float, iterations: int) -> RatingFit:
    n = h.size
    sigma = stderr_a = stderr_b = math.nan
    if n > 2:
        sigma = math.sqrt(rss / (n - 2))
        J = _jacobian(h, a, b)
        cov = (sigma ** 2) * np.linalg.pinv(J.T @ J)
        stderr_a, stderr_b = (float(math.sqrt(max(v, 0.0))) for v in np.diag(cov))
    if a <= 0:
        raise ConvergenceError(
            f"Fit converged to a={a:.4g} <= 0; discharge would fall with height. "
            "Check the calibration data or try another initial guess"
        )
    logger.debug("Rating fit converged after %d iterations: a=%.6g b=%.6g rss=%.6g", iterations, a, b, rss)
    return RatingFit(
        curve=RatingCurve(a=float(a), b=float(b)),
        n_points=int(n),
        iterations=int(iterations),
        rss=float(rss),
        sigma=float(sigma),
        stderr_a=float(stderr_a),
        stderr_b=float(stderr_b),
    )


def fit_calibration(
    samples: Sequence[CalibrationSample],
    initial_guess: Tuple[float, float] = DEFAULT_INITIAL_GUESS,
    *,
    tol: float = 1e-8,
    max_iter: int = 200,
) -> RatingFit:
    """Least-squares fit of ``Q = a * h^b`` to calibration samples.

    Raises ``InvalidInputError`` for empty, non-finite or inadmissible samples
    and ``ConvergenceError`` when the iteration bound is exhausted, when the
    fit is held at the ``b > 0`` bound by a zero height, or when the
    converged ``a`` is not positive.
    """
    h, q = calibration_arrays(samples)
    a, b = (float(v) for v in initial_guess)
    if not (math.isfinite(a) and math.isfinite(b)):
        raise InvalidInputError(f"Initial guess must be finite, got a={a}, b={b}")
    has_zero = bool(np.any(h == 0.0))
    if has_zero and b <= 0:
        raise InvalidInputError("Initial exponent b must be > 0 when a calibration height is zero")

    r = q - _predict(h, a, b)
    rss = float(r @ r)
    if not math.isfinite(rss):
        raise InvalidInputError(f"Initial guess a={a}, b={b} gives non-finite predictions")

    lam = _LAMBDA_START
    for it in range(1, max_iter + 1):
        J = _jacobian(h, a, b)
        theta = np.array([a, b])

        # convergence: the undamped step is negligible or cannot pay off
        gn = np.linalg.lstsq(J, r, rcond=None)[0]
        predicted = float(np.sum((J @ gn) ** 2))
        if rss == 0.0 or predicted <= tol * rss or np.all(np.abs(gn) <= tol * (np.abs(theta) + tol)):
            return _finish(h, a, b, rss, it - 1)

        JTJ = J.T @ J
        g = J.T @ r
        accepted = False
        while lam <= _LAMBDA_MAX:
            try:
                step = np.linalg.solve(JTJ + lam * np.diag(np.diag(JTJ)), g)
            except np.linalg.LinAlgError:
                lam *= 10.0
                continue
            a_new, b_new = a + float(step[0]), b + float(step[1])
            if has_zero and b_new <= 0:
                lam *= 10.0
                continue
            r_new = q - _predict(h, a_new, b_new)
            rss_new = float(r_new @ r_new)
            if math.isfinite(rss_new) and rss_new < rss:
                accepted = True
                break
            lam *= 10.0

        if not accepted:
            if has_zero and b + float(gn[1]) <= 0:
                raise ConvergenceError(
                    f"Exponent b is pinned at {b:.4g} by the b > 0 bound while a calibration "
                    "height is zero; the data do not rise with height"
                )
            logger.debug("No damped step lowers rss=%.6g at iteration %d", rss, it)
            return _finish(h, a, b, rss, it)

        a, b, r, rss = a_new, b_new, r_new, rss_new
        lam = max(lam / 10.0, _LAMBDA_MIN)
        logger.debug("iter %d: a=%.6g b=%.6g rss=%.6g lambda=%.1e", it, a, b, rss, lam)

    raise ConvergenceError(
        f"Rating-curve fit did not converge within {max_iter} iterations "
        f"(a={a:.4g}, b={b:.4g}, rss={rss:.4g})"
    )


def fit_rating_curve(
    samples: Sequence[CalibrationSample],
    initial_guess: Tuple[float, float] = DEFAULT_INITIAL_GUESS,
    **kwargs,
) -> RatingCurve:
    return fit_calibration(samples, initial_guess, **kwargs).curve


@dataclass(frozen=True)
class CalibrationFitter:
    """Fit settings bundled for repeated calibration runs."""

    tol: float = 1e-8
    max_iter: int = 200

    def fit(
        self,
        samples: Sequence[CalibrationSample],
        initial_guess: Tuple[float, float] = DEFAULT_INITIAL_GUESS,
    ) -> RatingCurve:
        return self.fit_report(samples, initial_guess).curve

    def fit_report(
        self,
        samples: Sequence[CalibrationSample],
        initial_guess: Tuple[float, float] = DEFAULT_INITIAL_GUESS,
    ) -> RatingFit:
        return fit_calibration(samples, initial_guess, tol=self.tol, max_iter=self.max_iter)


__all__ = [
    "CalibrationSample",
    "RatingCurve",
    "RatingCurveParameters",
    "RatingFit",
    "CalibrationFitter",
    "calibration_arrays",
    "fit_calibration",
    "fit_rating_curve",
    "DEFAULT_INITIAL_GUESS",
]
