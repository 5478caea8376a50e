"""QSettings-backed persistence adapter for AppSettings.

Values are grouped the way the configuration dialogs present them
(``modbus/...``, ``sweep/...``, ``analysis/...``, ``app/...``) so settings
written by earlier versions of the station software are picked up. PySide6
stays out of the shared module.
"""
from __future__ import annotations

from typing import Dict, Optional

from PySide6.QtCore import QSettings

from shared.app_settings import AppSettings, AppSettingsStore, SettingsPersistence

_GROUPS: Dict[str, str] = {
    "port": "modbus",
    "baud_rate": "modbus",
    "data_bits": "modbus",
    "parity": "modbus",
    "stop_bits": "modbus",
    "flow_control": "modbus",
    "sensor_a_address": "modbus",
    "sensor_b_address": "modbus",
    "generator_address": "modbus",
    "amplitude_percent": "sweep",
    "start_freq": "sweep",
    "end_freq": "sweep",
    "sweep_speed": "sweep",
    "cycles": "sweep",
    "direction": "sweep",
    "window_start_freq": "analysis",
    "window_end_freq": "analysis",
    "use_approximation": "analysis",
    "analysis_interval_ms": "analysis",
}


def settings_key(name: str) -> str:
    return f"{_GROUPS.get(name, 'app')}/{name}"


class QSettingsPersistence(SettingsPersistence):
    """QSettings-backed persistence for GUI mode."""

    def __init__(
        self,
        organization: str = "LossMeter",
        application: str = "LossMeter",
        *,
        qsettings: Optional[QSettings] = None,
    ) -> None:
        self._qsettings = qsettings if qsettings is not None else QSettings(organization, application)
        self._field_names = [f.name for f in AppSettings.__dataclass_fields__.values()]

    def load(self) -> dict:
        """Load all settings from QSettings."""
        data = {}
        for name in self._field_names:
            val = self._qsettings.value(settings_key(name))
            if val is not None:
                data[name] = val
        return data

    def save(self, data: dict) -> None:
        """Save settings to QSettings."""
        for name, val in data.items():
            key = settings_key(name)
            if val is None:
                self._qsettings.remove(key)
            else:
                self._qsettings.setValue(key, val)
        self._qsettings.sync()


def create_gui_settings_store() -> AppSettingsStore:
    """Factory function to create a settings store with QSettings persistence."""
    return AppSettingsStore(persistence=QSettingsPersistence())


__all__ = ["QSettingsPersistence", "create_gui_settings_store", "settings_key"]
