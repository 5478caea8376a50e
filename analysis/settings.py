from __future__ import annotations

from dataclasses import dataclass, replace
import itertools
import threading
from typing import Callable, Dict, Optional, Tuple

SettingsCallback = Callable[["AnalysisSettings"], None]


@dataclass(frozen=True)
class AnalysisSettings:
    """Parameters of the loss-factor analysis.

    ``start_freq``/``end_freq`` bound the analysis window in either order.
    The fit-related fields only matter when ``use_approximation`` is set.
    """

    start_freq: float = 0.0
    end_freq: float = 1000.0
    edge_trim: int = 2
    use_approximation: bool = False
    dense_points: int = 150
    outlier_sigma: float = 2.0
    max_iterations: int = 1000

    def __post_init__(self) -> None:
        if self.edge_trim < 0:
            raise ValueError("edge_trim must be non-negative")
        if self.dense_points < 3:
            raise ValueError("dense_points must be at least 3")
        if self.outlier_sigma <= 0:
            raise ValueError("outlier_sigma must be positive")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

    @property
    def window(self) -> Tuple[float, float]:
        return min(self.start_freq, self.end_freq), max(self.start_freq, self.end_freq)


class AnalysisSettingsStore:
    """Shared analysis parameters for the analyzer and any settings form.

    Subscribers hear about an update only when it actually changes a value.
    """

    def __init__(self, initial: Optional[AnalysisSettings] = None) -> None:
        self._lock = threading.Lock()
        self._current = initial if initial is not None else AnalysisSettings()
        self._tokens = itertools.count()
        self._callbacks: Dict[int, SettingsCallback] = {}

    def get(self) -> AnalysisSettings:
        with self._lock:
            return self._current

    def update(self, **changes) -> AnalysisSettings:
        with self._lock:
            previous = self._current
            self._current = replace(previous, **changes)
            current = self._current
            callbacks = list(self._callbacks.values()) if current != previous else []
        for callback in callbacks:
            callback(current)
        return current

    def subscribe(self, callback: SettingsCallback, *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = next(self._tokens)
            self._callbacks[token] = callback
            current = self._current
        if replay:
            callback(current)
        return lambda: self._drop(token)

    def _drop(self, token: int) -> None:
        with self._lock:
            self._callbacks.pop(token, None)


__all__ = ["AnalysisSettings", "AnalysisSettingsStore"]
