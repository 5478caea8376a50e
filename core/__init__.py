"""Core application utilities."""

from .engine import EngineEvent, EngineEventType, EngineState, PollingEngine, sweep_progress
from .runtime import MeasurementRuntime

__all__ = [
    "EngineEvent",
    "EngineEventType",
    "EngineState",
    "PollingEngine",
    "sweep_progress",
    "MeasurementRuntime",
]
