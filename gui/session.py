"""MeasurementSession - Qt adapter for MeasurementRuntime.

Owns the timers that drive the headless runtime on the Qt event loop and
re-emits PollingEngine events as Qt signals for windows, charts and status
indicators.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from PySide6 import QtCore

from core.engine import EngineEvent, EngineEventType
from core.runtime import MeasurementRuntime
from shared.models import SweepConfig

if TYPE_CHECKING:  # pragma: no cover
    from analysis.models import AnalysisResult

logger = logging.getLogger(__name__)

SIMULATION_POLL_INTERVAL_MS = 200


class MeasurementSession(QtCore.QObject):
    """Qt adapter that drives a MeasurementRuntime from QTimers.

    Two timers run while connected: the poll tick (one request per device)
    and the analysis cadence. Replies arrive through the Qt event loop.
    Everything runs on the thread that owns this object.
    """

    stateChanged = QtCore.Signal(str)
    dataReady = QtCore.Signal(int, int, float)
    errorOccurred = QtCore.Signal(str)
    healthChanged = QtCore.Signal(int, bool)
    recordingChanged = QtCore.Signal(bool)
    analysisUpdated = QtCore.Signal(object)
    progressChanged = QtCore.Signal(float)
    sweepArmed = QtCore.Signal(object)
    sweepFinished = QtCore.Signal()

    def __init__(
        self,
        runtime: MeasurementRuntime,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._runtime = runtime
        self._listener_token = runtime.engine.add_listener(self._on_engine_event)

        settings = runtime.settings
        poll_ms = SIMULATION_POLL_INTERVAL_MS if runtime.engine.simulation else settings.poll_interval_ms

        self._poll_timer = QtCore.QTimer(self)
        self._poll_timer.setInterval(int(poll_ms))
        self._poll_timer.timeout.connect(self._on_poll)

        self._analysis_timer = QtCore.QTimer(self)
        self._analysis_timer.setInterval(int(settings.analysis_interval_ms))
        self._analysis_timer.timeout.connect(self.run_analysis)

    @property
    def runtime(self) -> MeasurementRuntime:
        return self._runtime

    @property
    def poll_timer(self) -> QtCore.QTimer:
        return self._poll_timer

    @property
    def analysis_timer(self) -> QtCore.QTimer:
        return self._analysis_timer

    def _on_engine_event(self, event: EngineEvent) -> None:
        """Translate engine callbacks into Qt signals."""
        if event.event_type == EngineEventType.STATE_CHANGED:
            self.stateChanged.emit(event.data.name)
        elif event.event_type == EngineEventType.DATA_READY:
            role, parameter, value = event.data
            self.dataReady.emit(int(role), int(parameter), float(value))
        elif event.event_type == EngineEventType.ERROR:
            self.errorOccurred.emit(str(event.data))
        elif event.event_type == EngineEventType.HEALTH_CHANGED:
            role, ok = event.data
            self.healthChanged.emit(int(role), bool(ok))
        elif event.event_type == EngineEventType.RECORDING_CHANGED:
            self.recordingChanged.emit(bool(event.data))
        elif event.event_type == EngineEventType.SWEEP_ARMED:
            self.sweepArmed.emit(event.data)
        elif event.event_type == EngineEventType.SWEEP_FINISHED:
            self.sweepFinished.emit()

    # -------------------------------------------------------------------------
    # Control entry points
    # -------------------------------------------------------------------------

    def connect_devices(self) -> bool:
        if not self._runtime.connect():
            return False
        self._poll_timer.start()
        self._analysis_timer.start()
        return True

    def disconnect_devices(self) -> None:
        self._poll_timer.stop()
        self._analysis_timer.stop()
        self._runtime.disconnect()

    def start_measurement(self, sweep: Optional[SweepConfig] = None) -> bool:
        return self._runtime.start_measurement(sweep)

    def stop_measurement(self) -> None:
        self._runtime.stop_measurement()

    def clear(self) -> None:
        self._runtime.clear()
        self.analysisUpdated.emit(self._runtime.analyzer.result)

    def set_use_approximation(self, enabled: bool) -> None:
        result = self._runtime.set_use_approximation(enabled)
        self.analysisUpdated.emit(result)

    def run_analysis(self) -> "AnalysisResult":
        result = self._runtime.run_analysis()
        self.analysisUpdated.emit(result)
        return result

    def _on_poll(self) -> None:
        self._runtime.poll()
        self.progressChanged.emit(self._runtime.engine.progress())

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def cleanup(self) -> None:
        """Stop timers, close the link and detach from the engine."""
        self.disconnect_devices()
        if self._listener_token is not None:
            self._runtime.engine.remove_listener(self._listener_token)
            self._listener_token = None


__all__ = ["MeasurementSession"]
