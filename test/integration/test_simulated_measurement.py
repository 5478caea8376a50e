"""
End-to-end measurement scenarios through MeasurementRuntime.

The simulated station sweeps 7 -> 30 Hz across a single-degree-of-freedom
resonance (17 Hz, damping ratio 0.15) whose half-power loss factor is known
in closed form. A scripted bus run checks the same flow over the wire path.
"""
from __future__ import annotations

import math

import pytest

from core.engine import PollingEngine
from core.runtime import MeasurementRuntime
from daq.register_map import StatusFlag
from daq.simulation import ResonanceSimulator
from fixtures.fake_transport import FakeTransport
from shared.app_settings import AppSettingsStore, InMemoryPersistence
from shared.models import DeviceRole, Parameter, SweepConfig

ZETA = 0.15
FN = 17.0


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _sdof_loss_factor(zeta: float) -> float:
    # Half-power points of the magnification curve, relative to its peak.
    base = 1.0 - 2.0 * zeta * zeta
    spread = 2.0 * zeta * math.sqrt(1.0 - zeta * zeta)
    r1 = math.sqrt(base - spread)
    r2 = math.sqrt(base + spread)
    return (r2 - r1) / math.sqrt(base)


def _simulated_runtime(clock: Clock) -> MeasurementRuntime:
    simulator = ResonanceSimulator(natural_freq=FN, damping_ratio=ZETA, clock=clock)
    engine = PollingEngine(simulation=True, simulator=simulator)
    return MeasurementRuntime(app_settings_store=AppSettingsStore(InMemoryPersistence()), engine=engine)


def _run_sweep(runtime: MeasurementRuntime, clock: Clock, sweep: SweepConfig, dt: float = 0.1) -> None:
    assert runtime.connect()
    assert runtime.start_measurement(sweep)
    steps = int(math.ceil(sweep.duration_s / dt)) + 5
    for k in range(steps):
        clock.now = k * dt
        runtime.poll()


@pytest.fixture
def sweep():
    return SweepConfig(amplitude_percent=50.0, start_freq=7.0, end_freq=30.0, sweep_speed=60.0)


def test_direct_half_power_on_simulated_sweep(sweep):
    clock = Clock()
    runtime = _simulated_runtime(clock)
    _run_sweep(runtime, clock, sweep)

    assert runtime.engine.generation_finished
    assert runtime.engine.progress() == 100.0
    result = runtime.run_analysis()
    assert result.success
    peak = FN * math.sqrt(1.0 - 2.0 * ZETA * ZETA)
    assert result.peak_frequency == pytest.approx(peak, abs=0.15)
    assert result.loss_factor == pytest.approx(_sdof_loss_factor(ZETA), rel=0.03)
    runtime.shutdown()


def test_approximation_mode_on_simulated_sweep(sweep):
    clock = Clock()
    runtime = _simulated_runtime(clock)
    _run_sweep(runtime, clock, sweep, dt=0.25)
    runtime.run_analysis()

    result = runtime.set_use_approximation(True)
    assert result.success
    assert 15.5 < result.peak_frequency < 18.0
    assert 0.15 < result.loss_factor < 0.5
    assert runtime.settings.use_approximation is True
    curve_x, _ = runtime.analyzer.fit_curve
    assert curve_x.size == 150
    runtime.shutdown()


def test_new_measurement_clears_previous_history(sweep):
    clock = Clock()
    runtime = _simulated_runtime(clock)
    _run_sweep(runtime, clock, sweep)
    first = runtime.engine.store.length(DeviceRole.SENSOR_A)
    assert first > 0

    runtime.start_measurement(sweep)
    assert runtime.engine.store.length(DeviceRole.SENSOR_A) == 0
    assert not runtime.engine.generation_finished
    assert not runtime.analyzer.result.success


def test_analysis_window_restricts_trace(sweep):
    clock = Clock()
    runtime = _simulated_runtime(clock)
    _run_sweep(runtime, clock, sweep)
    runtime.run_analysis()
    runtime.set_analysis_window(10.0, 25.0)
    x, _ = runtime.analyzer.trace
    assert x.min() >= 10.0 and x.max() <= 25.0
    assert runtime.analyzer.result.success
    assert runtime.settings.window_start_freq == 10.0


def test_bus_measurement_with_generator_frequency():
    fake = FakeTransport()
    store = AppSettingsStore(InMemoryPersistence({"port": "COM7"}))
    runtime = MeasurementRuntime(app_settings_store=store, transport_factory=lambda settings: fake)
    assert runtime.connect()
    sweep = SweepConfig(amplitude_percent=30.0, start_freq=10.0, end_freq=30.0, sweep_speed=120.0)
    assert runtime.start_measurement(sweep)
    runtime.service()
    assert len(fake.writes_to(1)) == 8
    assert store.get().sweep_speed == 120.0

    ready = int(StatusFlag.READY_TO_RECORD)
    simulator = ResonanceSimulator(natural_freq=20.0, damping_ratio=0.05)
    freqs = [10.0 + 0.25 * k for k in range(81)]
    for f in freqs:
        fake.set_generator(1, frequency=f)
        fake.set_sensor(246, flags=ready, amplitude=100.0 * simulator.magnification(f), gap=1.0)
        fake.set_sensor(247, flags=ready, amplitude=100.0, gap=1.0)
        runtime.poll()
        runtime.service()

    recorded = runtime.engine.series(DeviceRole.SENSOR_A, Parameter.FREQUENCY)
    assert recorded.size == len(freqs)
    # Sensor samples carry the frequency cached from the previous cycle.
    assert list(recorded[1:]) == freqs[:-1]
    result = runtime.run_analysis()
    assert result.success
    assert result.peak_frequency == pytest.approx(20.0, abs=0.5)
    assert runtime.health_snapshot()["healthy"]["GENERATOR"] is True
    runtime.shutdown()
