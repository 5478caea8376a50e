__all__ = ["MeasurementSession", "QSettingsPersistence", "create_gui_settings_store"]

from .session import MeasurementSession
from .qsettings_adapter import QSettingsPersistence, create_gui_settings_store
