from __future__ import annotations

from typing import Dict, List, Tuple

import numpy as np

from .models import SENSOR_ROLES, DeviceRole, Parameter

NOT_AVAILABLE = 0.0


class SeriesStore:
    """
    Per-sensor, per-parameter sample history plus a last-value table.

    Series only grow through :meth:`append` (the polling engine decides when a
    sample is durable); the last-value table is overwritten on every decoded
    reply regardless of recording state. Consumers read copies via
    :meth:`series` so a scan never sees the vector change underneath it.
    """

    def __init__(self) -> None:
        self._series: Dict[Tuple[DeviceRole, Parameter], List[float]] = {
            (role, param): [] for role in SENSOR_ROLES for param in Parameter
        }
        self._last = np.zeros((len(SENSOR_ROLES), len(Parameter)), dtype=np.float64)

    # ---- history -----------------------------------------------------------

    def append(self, role: DeviceRole, parameter: Parameter, value: float) -> None:
        key = (DeviceRole(role), Parameter(parameter))
        if key not in self._series:
            raise ValueError(f"no series for {key[0].name}")
        self._series[key].append(float(value))

    def series(self, role: DeviceRole, parameter: Parameter) -> np.ndarray:
        """Return a snapshot copy of one time series."""
        key = (DeviceRole(role), Parameter(parameter))
        if key not in self._series:
            return np.zeros(0, dtype=np.float64)
        return np.array(self._series[key], dtype=np.float64)

    def length(self, role: DeviceRole, parameter: Parameter = Parameter.AMPLITUDE) -> int:
        key = (DeviceRole(role), Parameter(parameter))
        return len(self._series.get(key, ()))

    def clear(self) -> None:
        for values in self._series.values():
            values.clear()

    # ---- last values -------------------------------------------------------

    def set_last(self, device_index: int, param_index: int, value: float) -> None:
        if not self._in_range(device_index, param_index):
            return
        self._last[int(device_index), int(param_index)] = float(value)

    def last_value(self, device_index: int, param_index: int) -> float:
        """Most recent decoded value, or ``NOT_AVAILABLE`` outside the table."""
        if not self._in_range(device_index, param_index):
            return NOT_AVAILABLE
        return float(self._last[int(device_index), int(param_index)])

    def _in_range(self, device_index: int, param_index: int) -> bool:
        rows, cols = self._last.shape
        return 0 <= int(device_index) < rows and 0 <= int(param_index) < cols

    def lengths(self) -> Dict[str, int]:
        return {f"{role.name.lower()}.{param.name.lower()}": len(values) for (role, param), values in self._series.items()}


__all__ = ["SeriesStore", "NOT_AVAILABLE"]
