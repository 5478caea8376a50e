"""Oberst half-power bandwidth on a sampled resonance trace.

The peak is located by argmax, the threshold is ``peak / sqrt(2)`` and the
two crossings are found by scanning outward from the peak and linearly
interpolating between the bracketing samples. The loss factor is the
bandwidth divided by the peak frequency.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np

from .models import AnalysisResult

logger = logging.getLogger(__name__)

MIN_SAMPLES = 3


def divide_amplitudes(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Elementwise ``a / b`` over the common length; 0 where ``b`` is 0."""
    num = np.asarray(a, dtype=np.float64)
    den = np.asarray(b, dtype=np.float64)
    n = min(num.size, den.size)
    num = num[:n]
    den = den[:n]
    out = np.zeros(n, dtype=np.float64)
    nonzero = den != 0
    np.divide(num, den, out=out, where=nonzero)
    return out


def select_window(
    freq: np.ndarray,
    amp: np.ndarray,
    start_freq: float,
    end_freq: float,
    edge_trim: int = 2,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Keep samples whose frequency lies in ``[start_freq, end_freq]`` and drop the
    first ``edge_trim`` of them (sweep start transient).
    """
    x = np.asarray(freq, dtype=np.float64)
    y = np.asarray(amp, dtype=np.float64)
    n = min(x.size, y.size)
    x = x[:n]
    y = y[:n]
    lo, hi = min(start_freq, end_freq), max(start_freq, end_freq)
    mask = (x >= lo) & (x <= hi) & np.isfinite(x) & np.isfinite(y)
    x = x[mask]
    y = y[mask]
    trim = max(0, int(edge_trim))
    return x[trim:], y[trim:]


def _lower_crossing(x: np.ndarray, y: np.ndarray, peak: int, threshold: float) -> Optional[float]:
    for i in range(peak, 0, -1):
        if y[i] > threshold and y[i - 1] <= threshold:
            t = (threshold - y[i]) / (y[i - 1] - y[i])
            return float(x[i] + t * (x[i - 1] - x[i]))
    return None


def _upper_crossing(x: np.ndarray, y: np.ndarray, peak: int, threshold: float) -> Optional[float]:
    for i in range(peak, x.size - 1):
        if y[i] > threshold and y[i + 1] <= threshold:
            t = (threshold - y[i]) / (y[i + 1] - y[i])
            return float(x[i] + t * (x[i + 1] - x[i]))
    return None


def half_power_bandwidth(freq: np.ndarray, amp: np.ndarray) -> AnalysisResult:
    """
    Half-power analysis of ``(freq, amp)``.

    Returns a failed result (all NaN) when fewer than three samples are given,
    when either crossing is missing, or when a crossing or the peak frequency
    is not positive.
    """
    x = np.asarray(freq, dtype=np.float64)
    y = np.asarray(amp, dtype=np.float64)
    n = min(x.size, y.size)
    if n < MIN_SAMPLES:
        logger.debug("Half-power analysis skipped: %d samples", n)
        return AnalysisResult.failed()
    x = x[:n]
    y = y[:n]

    peak = int(np.argmax(y))
    peak_freq = float(x[peak])
    peak_amp = float(y[peak])
    threshold = peak_amp / math.sqrt(2.0)

    f1 = _lower_crossing(x, y, peak, threshold)
    f2 = _upper_crossing(x, y, peak, threshold)
    if f1 is None or f2 is None or f1 <= 0 or f2 <= 0 or peak_freq <= 0:
        logger.debug("Unable to find both half-power crossings (f1=%s, f2=%s)", f1, f2)
        return AnalysisResult.failed()

    bandwidth = f2 - f1
    return AnalysisResult(
        peak_frequency=peak_freq,
        peak_amplitude=peak_amp,
        threshold=threshold,
        f1=f1,
        f2=f2,
        bandwidth=bandwidth,
        loss_factor=bandwidth / peak_freq,
        success=True,
    )


__all__ = ["MIN_SAMPLES", "divide_amplitudes", "select_window", "half_power_bandwidth"]
