from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
import threading
from typing import Any, Callable, Dict, Optional

from .models import DeviceAddresses, SerialSettings, SweepConfig, SweepDirection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppSettings:
    # Serial line
    port: str = ""
    baud_rate: int = 19200
    data_bits: int = 8
    parity: str = "None"
    stop_bits: float = 1.0
    flow_control: str = "None"
    # Bus addresses (0 = no generator on the bus)
    sensor_a_address: int = 246
    sensor_b_address: int = 247
    generator_address: int = 1
    # Sweep defaults
    amplitude_percent: float = 50.0
    start_freq: float = 10.0
    end_freq: float = 30.0
    sweep_speed: float = 60.0
    cycles: int = 1
    direction: int = int(SweepDirection.UP)
    # Analysis window / mode
    window_start_freq: float = 0.0
    window_end_freq: float = 1000.0
    use_approximation: bool = False
    # Cadence
    poll_interval_ms: int = 300
    analysis_interval_ms: int = 500
    simulation: bool = False

    def serial_settings(self) -> SerialSettings:
        return SerialSettings(
            port=self.port,
            baud_rate=self.baud_rate,
            data_bits=self.data_bits,
            parity=self.parity,
            stop_bits=self.stop_bits,
            flow_control=self.flow_control,
        )

    def device_addresses(self) -> DeviceAddresses:
        return DeviceAddresses(
            sensor_a=self.sensor_a_address,
            sensor_b=self.sensor_b_address,
            generator=self.generator_address or None,
        )

    def sweep_config(self) -> SweepConfig:
        return SweepConfig(
            amplitude_percent=self.amplitude_percent,
            start_freq=self.start_freq,
            end_freq=self.end_freq,
            sweep_speed=self.sweep_speed,
            cycles=self.cycles,
            direction=SweepDirection(self.direction),
        )


class SettingsPersistence:
    """Backend used by AppSettingsStore to load and save raw values."""

    def load(self) -> Dict[str, Any]:
        raise NotImplementedError

    def save(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryPersistence(SettingsPersistence):
    """Process-local persistence for headless runs and tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def load(self) -> Dict[str, Any]:
        return dict(self._data)

    def save(self, data: Dict[str, Any]) -> None:
        self._data.update(data)


def _coerce(raw: Any, default: Any) -> Any:
    # QSettings hands back strings for most stored values.
    if isinstance(default, bool):
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return bool(raw)
    if isinstance(default, int):
        return int(float(raw))
    if isinstance(default, float):
        return float(raw)
    return str(raw)


class AppSettingsStore:
    """Thread-safe persistent settings store for last-used measurement values."""

    def __init__(self, persistence: Optional[SettingsPersistence] = None) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[AppSettings], None]] = {}
        self._next_token = 0
        self._persistence = persistence or InMemoryPersistence()
        self._settings = self._load_settings()

    def _load_settings(self) -> AppSettings:
        raw = self._persistence.load()
        defaults = AppSettings()
        values: Dict[str, Any] = {}
        for f in fields(AppSettings):
            if f.name not in raw or raw[f.name] is None:
                continue
            default = getattr(defaults, f.name)
            try:
                values[f.name] = _coerce(raw[f.name], default)
            except (TypeError, ValueError):
                logger.debug("Ignoring stored %s=%r", f.name, raw[f.name])
        return replace(defaults, **values)

    def get(self) -> AppSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> AppSettings:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
            self._persistence.save(asdict(new_settings))
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                logger.debug("App settings subscriber callback failed: %s", exc)
                continue
        return new_settings

    def subscribe(self, callback: Callable[[AppSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = ["AppSettings", "AppSettingsStore", "SettingsPersistence", "InMemoryPersistence"]
