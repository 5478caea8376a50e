"""
Shared data structures used by the polling engine, the analysis code and the
Qt session.
"""

from .models import DeviceAddresses, DeviceRole, Parameter, SerialSettings, SweepConfig, SweepDirection
from .series import NOT_AVAILABLE, SeriesStore

__all__ = [
    "DeviceAddresses",
    "DeviceRole",
    "Parameter",
    "SerialSettings",
    "SweepConfig",
    "SweepDirection",
    "SeriesStore",
    "NOT_AVAILABLE",
]
