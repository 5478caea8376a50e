from .analyzer import ResonanceAnalyzer
from .bandwidth import divide_amplitudes, half_power_bandwidth, select_window
from .lorentzian import FitResult, coordinate_descent, fit_resonance, initial_guess, skewed_lorentzian
from .models import AnalysisResult, FitParameters
from .settings import AnalysisSettings, AnalysisSettingsStore

__all__ = [
    "ResonanceAnalyzer",
    "divide_amplitudes",
    "half_power_bandwidth",
    "select_window",
    "FitResult",
    "coordinate_descent",
    "fit_resonance",
    "initial_guess",
    "skewed_lorentzian",
    "AnalysisResult",
    "FitParameters",
    "AnalysisSettings",
    "AnalysisSettingsStore",
]
