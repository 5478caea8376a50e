# daq/simulation.py
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from shared.models import SweepConfig

from .register_map import GeneratorReading, SensorReading, StatusFlag


@dataclass(frozen=True)
class SimulatedFrame:
    """Readings for one polling tick, shaped like decoded device replies."""

    sensor_a: SensorReading
    sensor_b: SensorReading
    generator: GeneratorReading


class ResonanceSimulator:
    """
    Closed-form stand-in for the two sensors and the generator.

    The generator frequency ramps linearly with elapsed time. Sensor A sees the
    single-degree-of-freedom magnification of a specimen with natural
    frequency ``natural_freq`` and damping ratio ``damping_ratio``; sensor B
    is the constant reference excitation. Ready is always reported;
    generation-finished is reported once the ramp passes ``end_freq``.
    """

    def __init__(
        self,
        *,
        natural_freq: float = 17.0,
        damping_ratio: float = 0.15,
        start_freq: float = 7.0,
        rate_hz_per_s: float = 1.0,
        end_freq: Optional[float] = None,
        reference_amplitude: float = 1e3,
        gap_a: float = 2.9e3,
        gap_b: float = 2.8e3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if natural_freq <= 0:
            raise ValueError("natural_freq must be positive")
        if damping_ratio <= 0:
            raise ValueError("damping_ratio must be positive")
        self.natural_freq = float(natural_freq)
        self.damping_ratio = float(damping_ratio)
        self.start_freq = float(start_freq)
        self.rate_hz_per_s = float(rate_hz_per_s)
        self.end_freq = end_freq
        self.reference_amplitude = float(reference_amplitude)
        self.gap_a = float(gap_a)
        self.gap_b = float(gap_b)
        self._clock = clock
        self._t0 = clock()
        self._cycles = 0

    def restart(self) -> None:
        self._t0 = self._clock()
        self._cycles = 0

    def apply_sweep(self, config: SweepConfig) -> None:
        """Follow an armed sweep: ramp from start to end at the configured speed."""
        self.start_freq = float(config.start_freq)
        self.end_freq = float(config.end_freq)
        rate = config.sweep_speed / 60.0
        self.rate_hz_per_s = rate if config.end_freq >= config.start_freq else -rate
        self.restart()

    def elapsed(self) -> float:
        return max(0.0, self._clock() - self._t0)

    def frequency(self) -> float:
        return self.start_freq + self.rate_hz_per_s * self.elapsed()

    def magnification(self, freq: float) -> float:
        r = freq / self.natural_freq
        return 1.0 / math.sqrt((1.0 - r * r) ** 2 + (2.0 * self.damping_ratio * r) ** 2)

    def finished(self, freq: float) -> bool:
        if self.end_freq is None:
            return False
        if self.rate_hz_per_s >= 0:
            return freq >= self.end_freq
        return freq <= self.end_freq

    def sample(self) -> SimulatedFrame:
        freq = self.frequency()
        done = self.finished(freq)
        if done:
            freq = float(self.end_freq)
            self._cycles = 1
        flags = StatusFlag.READY_TO_RECORD | (StatusFlag.GENERATION_FINISHED if done else 0)
        amp_a = self.magnification(freq) * self.reference_amplitude
        return SimulatedFrame(
            sensor_a=SensorReading(flags=int(flags), amplitude=amp_a, gap=self.gap_a),
            sensor_b=SensorReading(flags=int(flags), amplitude=self.reference_amplitude, gap=self.gap_b),
            generator=GeneratorReading(cycles=self._cycles, frequency=freq),
        )


__all__ = ["ResonanceSimulator", "SimulatedFrame"]
