"""Skewed-Lorentzian resonance model and its coordinate-descent fit.

Model::

    A(f) = A0 / (1 + ((f - f0) / f0 / eta)**2) * (1 + alpha * (f - f0) / f0) + offset

The optimizer is a greedy pattern search: each pass tries ``-step`` then
``+step`` on every parameter in turn and keeps any strictly better trial
immediately. A pass with no improvement halves every step. Trials with
``eta <= 0`` or ``f0 <= 0`` are never evaluated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .models import FitParameters

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERS = 1000
DEFAULT_STEP_FLOOR = 1e-9
DEFAULT_DENSE_POINTS = 150
DEFAULT_OUTLIER_SIGMA = 2.0
INITIAL_ETA = 0.05
_MIN_STEP = 1e-6
_MIN_INLIERS = 3

_ETA = 2
_F0 = 1


def skewed_lorentzian(freq, a0: float, f0: float, eta: float, alpha: float = 0.0, offset: float = 0.0):
    """Evaluate the model at ``freq`` (scalar or array)."""
    f = np.asarray(freq, dtype=np.float64)
    df_norm = (f - f0) / f0
    value = a0 / (1.0 + (df_norm / eta) ** 2) * (1.0 + alpha * df_norm) + offset
    if value.ndim == 0:
        return float(value)
    return value


def _model(x: np.ndarray, p: np.ndarray) -> np.ndarray:
    return skewed_lorentzian(x, p[0], p[1], p[2], p[3], p[4])


def sum_squared_error(x: np.ndarray, y: np.ndarray, params: FitParameters) -> float:
    return _sse(np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64), params.as_array())


def _sse(x: np.ndarray, y: np.ndarray, p: np.ndarray) -> float:
    d = _model(x, p) - y
    return float(np.dot(d, d))


def initial_guess(freq: np.ndarray, amp: np.ndarray) -> FitParameters:
    """Peak height and position from the data, eta 0.05, no skew, offset at the floor."""
    x = np.asarray(freq, dtype=np.float64)
    y = np.asarray(amp, dtype=np.float64)
    if x.size == 0 or y.size == 0:
        raise ValueError("initial_guess needs at least one sample")
    peak = int(np.argmax(y))
    return FitParameters(
        a0=float(y[peak]),
        f0=float(x[peak]),
        eta=INITIAL_ETA,
        alpha=0.0,
        offset=float(np.min(y)),
    )


def _initial_steps(p: np.ndarray) -> np.ndarray:
    a0, f0, eta, _alpha, offset = p
    return np.array(
        [
            max(_MIN_STEP, abs(a0) * 0.1),
            max(_MIN_STEP, abs(f0) * 0.05),
            max(_MIN_STEP, abs(eta) * 0.1),
            0.1,
            max(_MIN_STEP, abs(offset) * 0.1 if offset != 0 else 0.1),
        ],
        dtype=np.float64,
    )


def coordinate_descent(
    freq: np.ndarray,
    amp: np.ndarray,
    params: FitParameters,
    *,
    max_iters: int = DEFAULT_MAX_ITERS,
    step_floor: float = DEFAULT_STEP_FLOOR,
) -> float:
    """
    Refine ``params`` in place against ``(freq, amp)`` and return the final SSE.

    Always returns the best parameters found, whether or not the search
    converged before ``max_iters``.
    """
    x = np.asarray(freq, dtype=np.float64)
    y = np.asarray(amp, dtype=np.float64)
    current = params.as_array()
    steps = _initial_steps(current)
    best = _sse(x, y, current)

    iterations = 0
    for iterations in range(1, max_iters + 1):
        improved = False
        for p in range(current.size):
            for direction in (-1.0, 1.0):
                trial = current.copy()
                trial[p] += direction * steps[p]
                if trial[_ETA] <= 0.0 or trial[_F0] <= 0.0:
                    continue
                err = _sse(x, y, trial)
                if err < best:
                    best = err
                    current = trial
                    improved = True
        if not improved:
            steps *= 0.5
            if np.all(steps < step_floor):
                break

    params.assign(current)
    logger.debug("Coordinate descent stopped after %d iteration(s), SSE=%.6g", iterations, best)
    return best


@dataclass
class FitResult:
    """Refit parameters plus what the chart side needs to draw them."""

    params: FitParameters
    first_pass: FitParameters
    inliers: np.ndarray
    curve_freq: np.ndarray
    curve_amp: np.ndarray
    sse: float

    @property
    def outlier_count(self) -> int:
        return int(self.inliers.size - np.count_nonzero(self.inliers))


def fit_resonance(
    freq: np.ndarray,
    amp: np.ndarray,
    *,
    initial: Optional[FitParameters] = None,
    outlier_sigma: float = DEFAULT_OUTLIER_SIGMA,
    dense_points: int = DEFAULT_DENSE_POINTS,
    max_iters: int = DEFAULT_MAX_ITERS,
) -> FitResult:
    """
    Fit, drop points whose residual reaches ``outlier_sigma`` standard
    deviations, refit from the first-pass parameters, and sample the refit
    model on ``dense_points`` evenly spaced frequencies across the input range.

    If fewer than three points survive the residual filter the refit uses
    every point.
    """
    x = np.asarray(freq, dtype=np.float64)
    y = np.asarray(amp, dtype=np.float64)
    n = min(x.size, y.size)
    if n < _MIN_INLIERS:
        raise ValueError(f"fit needs at least {_MIN_INLIERS} samples, got {n}")
    x = x[:n]
    y = y[:n]

    params = initial.copy() if initial is not None else initial_guess(x, y)
    coordinate_descent(x, y, params, max_iters=max_iters)
    first_pass = params.copy()

    residuals = y - _model(x, first_pass.as_array())
    sigma = float(np.std(residuals))
    inliers = np.abs(residuals) < outlier_sigma * sigma
    if np.count_nonzero(inliers) < _MIN_INLIERS:
        inliers = np.ones(n, dtype=bool)

    sse = coordinate_descent(x[inliers], y[inliers], params, max_iters=max_iters)

    curve_freq = np.linspace(float(np.min(x)), float(np.max(x)), int(dense_points))
    curve_amp = _model(curve_freq, params.as_array())
    logger.debug(
        "Fit f0=%.4f eta=%.5f alpha=%.4f with %d/%d inliers",
        params.f0,
        params.eta,
        params.alpha,
        int(np.count_nonzero(inliers)),
        n,
    )
    return FitResult(
        params=params,
        first_pass=first_pass,
        inliers=inliers,
        curve_freq=curve_freq,
        curve_amp=np.asarray(curve_amp, dtype=np.float64),
        sse=sse,
    )


__all__ = [
    "skewed_lorentzian",
    "sum_squared_error",
    "initial_guess",
    "coordinate_descent",
    "FitResult",
    "fit_resonance",
]
