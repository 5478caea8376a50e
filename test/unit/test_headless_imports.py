"""Verify engine/analysis/shared modules are importable without PySide6.

These tests ensure the Qt decoupling is correctly implemented.
"""
from __future__ import annotations

import sys


def _forget(monkeypatch, *prefixes: str) -> None:
    for name in [k for k in sys.modules if k.startswith(prefixes)]:
        monkeypatch.delitem(sys.modules, name, raising=False)
    monkeypatch.setitem(sys.modules, "PySide6", None)
    monkeypatch.setitem(sys.modules, "PySide6.QtCore", None)


class TestHeadlessImports:
    """Core modules must not pull in Qt."""

    def test_engine_headless_import(self, monkeypatch):
        _forget(monkeypatch, "core", "daq", "shared")
        from core.engine import PollingEngine, EngineEventType

        assert PollingEngine is not None
        assert EngineEventType.DATA_READY is not None

    def test_analysis_headless_import(self, monkeypatch):
        _forget(monkeypatch, "analysis")
        from analysis import ResonanceAnalyzer, fit_resonance, half_power_bandwidth

        assert ResonanceAnalyzer is not None
        assert callable(fit_resonance)
        assert callable(half_power_bandwidth)

    def test_runtime_works_headless(self, monkeypatch):
        """A simulated runtime connects and polls with InMemoryPersistence."""
        _forget(monkeypatch, "core", "daq", "shared", "analysis")
        from core.runtime import MeasurementRuntime
        from shared.app_settings import AppSettingsStore, InMemoryPersistence

        runtime = MeasurementRuntime(
            app_settings_store=AppSettingsStore(InMemoryPersistence()),
            simulation=True,
        )
        assert runtime.connect()
        runtime.poll()
        assert runtime.engine.stats()["ticks"] == 1
        runtime.shutdown()

    def test_app_settings_store_works_headless(self, monkeypatch):
        _forget(monkeypatch, "shared")
        from shared.app_settings import AppSettingsStore

        store = AppSettingsStore()
        assert store.get().baud_rate == 19200
        assert store.update(baud_rate=9600).baud_rate == 9600
        assert store.get().baud_rate == 9600
