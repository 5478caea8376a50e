# analysis/analyzer.py
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .bandwidth import MIN_SAMPLES, divide_amplitudes, half_power_bandwidth, select_window
from .lorentzian import FitResult, fit_resonance
from .models import AnalysisResult
from .settings import AnalysisSettings, AnalysisSettingsStore

logger = logging.getLogger(__name__)

_EMPTY = np.zeros(0, dtype=np.float64)


class ResonanceAnalyzer:
    """
    Turns a sweep snapshot into a loss factor.

    ``analyze`` takes the frequency series and the two raw sensor amplitude
    series, builds the amplitude ratio, restricts it to the analysis window
    and runs the half-power detector, either on the samples directly or on the
    dense curve of a skewed-Lorentzian fit when approximation is enabled.

    Every call replaces :attr:`result` wholesale. The last inputs are kept so
    that toggling approximation recomputes at once.
    """

    def __init__(self, settings_store: Optional[AnalysisSettingsStore] = None) -> None:
        self._store = settings_store or AnalysisSettingsStore()
        self._settings = self._store.get()
        self._result = AnalysisResult.failed()
        self._fit: Optional[FitResult] = None
        self._trace: Tuple[np.ndarray, np.ndarray] = (_EMPTY, _EMPTY)
        self._inputs: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None
        self._unsubscribe = self._store.subscribe(self._on_settings, replay=False)

    # ---------------- Public API ----------------

    @property
    def settings(self) -> AnalysisSettings:
        return self._settings

    @property
    def settings_store(self) -> AnalysisSettingsStore:
        return self._store

    @property
    def result(self) -> AnalysisResult:
        return self._result

    @property
    def use_approximation(self) -> bool:
        return self._settings.use_approximation

    @property
    def fit(self) -> Optional[FitResult]:
        return self._fit

    @property
    def fit_curve(self) -> Tuple[np.ndarray, np.ndarray]:
        """Dense model curve of the last fit, or empty arrays outside approximation mode."""
        if self._fit is None:
            return _EMPTY, _EMPTY
        return self._fit.curve_freq.copy(), self._fit.curve_amp.copy()

    @property
    def inlier_mask(self) -> np.ndarray:
        if self._fit is None:
            return np.zeros(0, dtype=bool)
        return self._fit.inliers.copy()

    @property
    def trace(self) -> Tuple[np.ndarray, np.ndarray]:
        """Windowed (frequency, ratio) pair the last analysis ran on."""
        return self._trace[0].copy(), self._trace[1].copy()

    def analyze(self, freq, amp_a, amp_b) -> AnalysisResult:
        f = np.array(freq, dtype=np.float64)
        a = np.array(amp_a, dtype=np.float64)
        b = np.array(amp_b, dtype=np.float64)
        self._inputs = (f, a, b)
        return self._run(f, a, b)

    def set_use_approximation(self, enabled: bool) -> AnalysisResult:
        """Switch modes and recompute on the last inputs."""
        self._store.update(use_approximation=bool(enabled))
        return self._result

    def recompute(self) -> AnalysisResult:
        if self._inputs is None:
            self._result = AnalysisResult.failed()
            return self._result
        return self._run(*self._inputs)

    def reset(self) -> None:
        self._inputs = None
        self._fit = None
        self._trace = (_EMPTY, _EMPTY)
        self._result = AnalysisResult.failed()

    def close(self) -> None:
        self._unsubscribe()

    # --------------- Internals ------------------

    def _on_settings(self, settings: AnalysisSettings) -> None:
        self._settings = settings
        self.recompute()

    def _run(self, freq: np.ndarray, amp_a: np.ndarray, amp_b: np.ndarray) -> AnalysisResult:
        cfg = self._settings
        ratio = divide_amplitudes(amp_a, amp_b)
        lo, hi = cfg.window
        x, y = select_window(freq, ratio, lo, hi, cfg.edge_trim)
        self._trace = (x, y)
        self._fit = None

        if x.size < MIN_SAMPLES:
            self._result = AnalysisResult.failed()
            return self._result

        if cfg.use_approximation:
            self._fit = fit_resonance(
                x,
                y,
                outlier_sigma=cfg.outlier_sigma,
                dense_points=cfg.dense_points,
                max_iters=cfg.max_iterations,
            )
            self._result = half_power_bandwidth(self._fit.curve_freq, self._fit.curve_amp)
        else:
            self._result = half_power_bandwidth(x, y)

        if self._result.success:
            logger.debug(
                "Peak %.3f Hz, bandwidth %.4f Hz, loss factor %.5f",
                self._result.peak_frequency,
                self._result.bandwidth,
                self._result.loss_factor,
            )
        return self._result


__all__ = ["ResonanceAnalyzer"]
