from __future__ import annotations

import numpy as np
import pytest

from shared.models import DeviceRole, Parameter
from shared.series import NOT_AVAILABLE, SeriesStore


class TestSeriesHistory:
    def test_append_and_snapshot(self):
        store = SeriesStore()
        store.append(DeviceRole.SENSOR_A, Parameter.AMPLITUDE, 1.0)
        store.append(DeviceRole.SENSOR_A, Parameter.AMPLITUDE, 2.0)
        snap = store.series(DeviceRole.SENSOR_A, Parameter.AMPLITUDE)
        np.testing.assert_array_equal(snap, [1.0, 2.0])
        assert store.length(DeviceRole.SENSOR_A) == 2
        assert store.length(DeviceRole.SENSOR_B) == 0

    def test_snapshot_is_a_copy(self):
        store = SeriesStore()
        store.append(DeviceRole.SENSOR_B, Parameter.DISTANCE, 5.0)
        snap = store.series(DeviceRole.SENSOR_B, Parameter.DISTANCE)
        store.append(DeviceRole.SENSOR_B, Parameter.DISTANCE, 6.0)
        assert snap.size == 1

    def test_generator_has_no_series(self):
        store = SeriesStore()
        with pytest.raises(ValueError):
            store.append(DeviceRole.GENERATOR, Parameter.FREQUENCY, 1.0)
        assert store.series(DeviceRole.GENERATOR, Parameter.FREQUENCY).size == 0

    def test_clear_empties_every_series(self):
        store = SeriesStore()
        for role in (DeviceRole.SENSOR_A, DeviceRole.SENSOR_B):
            for param in Parameter:
                store.append(role, param, 1.0)
        store.set_last(0, 0, 3.0)
        store.clear()
        assert all(n == 0 for n in store.lengths().values())
        assert store.last_value(0, 0) == 3.0

    def test_lengths_keys(self):
        assert "sensor_a.amplitude" in SeriesStore().lengths()


class TestLastValues:
    def test_round_trip(self):
        store = SeriesStore()
        store.set_last(DeviceRole.SENSOR_B, Parameter.FREQUENCY, 17.0)
        assert store.last_value(1, 1) == 17.0

    @pytest.mark.parametrize("dev,param", [(-1, 0), (2, 0), (0, 3), (0, -1), (5, 5)])
    def test_out_of_range_is_not_available(self, dev, param):
        store = SeriesStore()
        store.set_last(dev, param, 99.0)
        assert store.last_value(dev, param) == NOT_AVAILABLE
