"""Headless loss-factor measurement runner."""
from __future__ import annotations

import argparse
import logging
import math
import sys
from typing import List, Optional

from PySide6.QtCore import QCoreApplication, QTimer

from core.runtime import MeasurementRuntime
from daq.transport import list_serial_ports
from gui.session import MeasurementSession
from shared.app_settings import AppSettingsStore, InMemoryPersistence
from shared.models import PARITY_CHOICES, STOP_BITS_CHOICES, SweepConfig, SweepDirection

logger = logging.getLogger("lossmeter")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a deterministic format."""
    level_value = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    logging.basicConfig(level=level_value, handlers=[handler])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lossmeter", description="Oberst half-power loss factor measurement.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--simulate", action="store_true", help="Use the built-in resonance simulator.")
    parser.add_argument("--list-ports", action="store_true", help="List serial ports and exit.")
    parser.add_argument("--remember", action="store_true", help="Load and save settings with QSettings.")

    serial_group = parser.add_argument_group("serial line")
    serial_group.add_argument("--port", help="Serial port, e.g. COM3 or /dev/ttyUSB0.")
    serial_group.add_argument("--baud", type=int, help="Baud rate.")
    serial_group.add_argument("--data-bits", type=int, choices=(5, 6, 7, 8))
    serial_group.add_argument("--parity", choices=PARITY_CHOICES)
    serial_group.add_argument("--stop-bits", type=float, choices=STOP_BITS_CHOICES)

    bus = parser.add_argument_group("bus addresses")
    bus.add_argument("--sensor-a", type=int, help="Sensor A address (1-247).")
    bus.add_argument("--sensor-b", type=int, help="Sensor B address (1-247).")
    bus.add_argument("--generator", type=int, help="Generator address (1-247, 0 for none).")

    sweep = parser.add_argument_group("sweep")
    sweep.add_argument(
        "--sweep",
        nargs=3,
        type=float,
        metavar=("START", "END", "SPEED"),
        help="Arm a sweep from START to END Hz at SPEED Hz/min.",
    )
    sweep.add_argument("--amplitude", type=float, help="Generator amplitude in percent.")
    sweep.add_argument("--cycles", type=int, help="Sweep cycle count.")
    sweep.add_argument("--direction", choices=[d.name.lower() for d in SweepDirection])

    analysis = parser.add_argument_group("analysis")
    analysis.add_argument("--window", nargs=2, type=float, metavar=("START", "END"), help="Analysis window in Hz.")
    analysis.add_argument("--approximate", action="store_true", help="Fit a skewed Lorentzian before the half-power step.")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds.")
    return parser


def _settings_store(remember: bool) -> AppSettingsStore:
    if remember:
        from gui.qsettings_adapter import create_gui_settings_store

        return create_gui_settings_store()
    return AppSettingsStore(persistence=InMemoryPersistence())


def _apply_args(store: AppSettingsStore, args: argparse.Namespace) -> None:
    overrides = {
        "port": args.port,
        "baud_rate": args.baud,
        "data_bits": args.data_bits,
        "parity": args.parity,
        "stop_bits": args.stop_bits,
        "sensor_a_address": args.sensor_a,
        "sensor_b_address": args.sensor_b,
        "generator_address": args.generator,
        "amplitude_percent": args.amplitude,
        "cycles": args.cycles,
    }
    if args.direction is not None:
        overrides["direction"] = int(SweepDirection[args.direction.upper()])
    if args.sweep is not None:
        overrides["start_freq"], overrides["end_freq"], overrides["sweep_speed"] = args.sweep
    if args.window is not None:
        overrides["window_start_freq"], overrides["window_end_freq"] = args.window
    if args.approximate:
        overrides["use_approximation"] = True
    overrides["simulation"] = bool(args.simulate)
    store.update(**{k: v for k, v in overrides.items() if v is not None})


def _log_result(result) -> None:
    if not result.success:
        logger.info("No half-power crossings yet")
        return
    logger.info(
        "Peak %.3f Hz (amp %.4g), f1 %.3f Hz, f2 %.3f Hz, bandwidth %.4f Hz, loss factor %.5f",
        result.peak_frequency,
        result.peak_amplitude,
        result.f1,
        result.f2,
        result.bandwidth,
        result.loss_factor,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.list_ports:
        for port in list_serial_ports():
            print(f"{port['device']}\t{port['description']}")
        return 0

    app = QCoreApplication(sys.argv[:1])
    app.setApplicationName("LossMeter")

    store = _settings_store(args.remember)
    try:
        _apply_args(store, args)
        settings = store.get()
        settings.device_addresses()
        sweep: SweepConfig = settings.sweep_config()
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    runtime = MeasurementRuntime(app_settings_store=store)
    session = MeasurementSession(runtime)
    session.errorOccurred.connect(lambda message: logger.warning("Device error: %s", message))
    session.analysisUpdated.connect(_log_result)
    session.sweepFinished.connect(lambda: logger.info("Sweep finished"))

    if not session.connect_devices():
        logger.error("Could not connect; check the serial settings")
        return 1

    if args.sweep is not None or args.simulate:
        if not session.start_measurement(sweep):
            logger.error("Could not arm the sweep")
    else:
        runtime.engine.start_recording()

    duration = args.duration
    if duration is None and args.simulate:
        duration = math.ceil(sweep.duration_s) + 2.0
    if duration is not None:
        QTimer.singleShot(int(duration * 1000), app.quit)

    try:
        code = app.exec()
    finally:
        _log_result(session.run_analysis())
        session.cleanup()
        runtime.shutdown()
    return code


if __name__ == "__main__":
    raise SystemExit(main())
