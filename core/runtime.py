from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from analysis.analyzer import ResonanceAnalyzer
from analysis.models import AnalysisResult
from analysis.settings import AnalysisSettings, AnalysisSettingsStore
from shared.app_settings import AppSettings, AppSettingsStore
from shared.models import DeviceRole, Parameter, SweepConfig

from .engine import PollingEngine, TransportFactory


class MeasurementRuntime:
    """
    Headless orchestrator for one loss-factor measurement station.

    Composes the polling engine, the resonance analyzer and the persisted
    application settings. The GUI session and the CLI runner both drive it
    from the Qt event loop: :meth:`poll` at the poll cadence and
    :meth:`run_analysis` at the analysis cadence. Replies from the RTU client
    arrive through the same loop; :meth:`service` pumps transports that have
    no loop of their own.
    """

    def __init__(
        self,
        *,
        app_settings_store: Optional[AppSettingsStore] = None,
        logger: Optional[logging.Logger] = None,
        engine: Optional[PollingEngine] = None,
        analyzer: Optional[ResonanceAnalyzer] = None,
        transport_factory: Optional[TransportFactory] = None,
        simulation: Optional[bool] = None,
    ) -> None:
        self.app_settings_store = app_settings_store or AppSettingsStore()
        self.logger = logger or logging.getLogger(__name__)
        settings = self.app_settings_store.get()
        if simulation is None:
            simulation = settings.simulation
        self.engine = engine or PollingEngine(simulation=simulation, transport_factory=transport_factory)
        if analyzer is None:
            analyzer = ResonanceAnalyzer(AnalysisSettingsStore(self._analysis_settings(settings)))
        self.analyzer = analyzer

    @staticmethod
    def _analysis_settings(settings: AppSettings) -> AnalysisSettings:
        return AnalysisSettings(
            start_freq=settings.window_start_freq,
            end_freq=settings.window_end_freq,
            use_approximation=settings.use_approximation,
        )

    @property
    def settings(self) -> AppSettings:
        return self.app_settings_store.get()

    # ---- connection ----

    def connect(self) -> bool:
        settings = self.settings
        return self.engine.start(settings.serial_settings(), settings.device_addresses())

    def disconnect(self) -> None:
        self.engine.stop()

    def poll(self) -> None:
        self.engine.tick()

    def service(self) -> None:
        self.engine.service()

    # ---- measurement ----

    def start_measurement(self, sweep: Optional[SweepConfig] = None) -> bool:
        """Clear history, start recording and arm the sweep on the generator."""
        if sweep is None:
            sweep = self.settings.sweep_config()
        else:
            self.app_settings_store.update(
                amplitude_percent=sweep.amplitude_percent,
                start_freq=sweep.start_freq,
                end_freq=sweep.end_freq,
                sweep_speed=sweep.sweep_speed,
                cycles=sweep.cycles,
                direction=int(sweep.direction),
            )
        self.engine.clear_data()
        self.analyzer.reset()
        self.engine.start_recording()
        addresses = self.engine.addresses
        if self.engine.simulation or (addresses is not None and addresses.generator is not None):
            return self.engine.arm_sweep(sweep)
        return True

    def stop_measurement(self) -> None:
        self.engine.stop_recording()
        self.engine.stop_sweep()

    def clear(self) -> None:
        self.engine.clear_data()
        self.analyzer.reset()

    # ---- analysis ----

    def run_analysis(self) -> AnalysisResult:
        """Analyze a snapshot of the recorded sensor A / sensor B amplitude ratio."""
        freq = self.engine.series(DeviceRole.SENSOR_A, Parameter.FREQUENCY)
        amp_a = self.engine.series(DeviceRole.SENSOR_A, Parameter.AMPLITUDE)
        amp_b = self.engine.series(DeviceRole.SENSOR_B, Parameter.AMPLITUDE)
        return self.analyzer.analyze(freq, amp_a, amp_b)

    def set_use_approximation(self, enabled: bool) -> AnalysisResult:
        self.app_settings_store.update(use_approximation=bool(enabled))
        return self.analyzer.set_use_approximation(enabled)

    def set_analysis_window(self, start_freq: float, end_freq: float) -> AnalysisResult:
        self.app_settings_store.update(window_start_freq=float(start_freq), window_end_freq=float(end_freq))
        self.analyzer.settings_store.update(start_freq=float(start_freq), end_freq=float(end_freq))
        return self.analyzer.result

    def health_snapshot(self) -> Dict[str, Any]:
        """Return current runtime health metrics for logging or display."""
        result = self.analyzer.result
        return {
            "engine": self.engine.stats(),
            "healthy": {role.name: self.engine.is_healthy(role) for role in DeviceRole},
            "progress": self.engine.progress(),
            "analysis": result.as_dict(),
        }

    def shutdown(self) -> None:
        self.engine.stop()
        self.analyzer.close()


__all__ = ["MeasurementRuntime"]
