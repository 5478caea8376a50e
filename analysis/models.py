# analysis/models.py
from __future__ import annotations

import math
from dataclasses import dataclass, fields

import numpy as np

_NAN = float("nan")


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of one half-power bandwidth pass. Replaced wholesale each cycle.

    When ``success`` is False every numeric field is NaN so stale values are
    never shown next to a failed analysis.
    """

    peak_frequency: float = _NAN
    peak_amplitude: float = _NAN
    threshold: float = _NAN
    f1: float = _NAN
    f2: float = _NAN
    bandwidth: float = _NAN
    loss_factor: float = _NAN
    success: bool = False

    @classmethod
    def failed(cls) -> "AnalysisResult":
        return cls()

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class FitParameters:
    """Working parameter set of the skewed Lorentzian, refined in place."""

    a0: float
    f0: float
    eta: float
    alpha: float = 0.0
    offset: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.a0, self.f0, self.eta, self.alpha, self.offset], dtype=np.float64)

    def assign(self, values: np.ndarray) -> None:
        self.a0, self.f0, self.eta, self.alpha, self.offset = (float(v) for v in values)

    def copy(self) -> "FitParameters":
        return FitParameters(self.a0, self.f0, self.eta, self.alpha, self.offset)

    def is_physical(self) -> bool:
        return self.f0 > 0 and self.eta > 0 and all(math.isfinite(v) for v in self.as_array())


__all__ = ["AnalysisResult", "FitParameters"]
