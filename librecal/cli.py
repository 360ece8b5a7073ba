"""
librecal
--------
Console front end for a LibreCAL.

What it does (in order):
  1. Loads librecal_config.yaml (or --config), command-line options win.
  2. Opens the device and prints identity, per-port standards and telemetry.
  3. Optionally switches one port to a standard (--set-port).
  4. Optionally downloads all stored coefficient sets (--coefficients),
     logging progress, and prints one row per set / parameter.

Usage:
    librecal --list
    librecal --resource ASRL/dev/ttyACM0::INSTR --coefficients
    librecal --set-port 1 SHORT
"""

import argparse
import logging
import sys
from typing import Iterable, List, Optional

from prettytable import PrettyTable
import pyvisa

from .acquisition import param_name
from .caldevice import CalDevice, UnrecognizedDeviceError
from .config import load_config
from .model import CoefficientSet, Trace, through_pairs
from .standard import Standard
from .transport import find_devices

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def device_table(device: CalDevice) -> PrettyTable:
    """Identity, port standards and telemetry of a connected device."""
    table = PrettyTable()
    table.field_names = ["Property", "Value"]
    table.align = "l"

    table.add_row(["Serial", device.serial or "unknown"])
    table.add_row(["Firmware", device.firmware])
    table.add_row(["Ports", device.num_ports])
    for port in range(1, device.num_ports + 1):
        table.add_row([f"Port {port}", device.get_standard(port).value])
    table.add_row(["Temperature (C)", "{:.2f}".format(device.get_temperature())])
    table.add_row(["Heater power (W)", "{:.3f}".format(device.get_heater_power())])
    table.add_row(["Stabilized", "yes" if device.stabilized() else "no"])
    return table


def _trace_row(set_name: str, param: str, trace: Optional[Trace]) -> list:
    if trace is None or len(trace) == 0:
        return [set_name, param, 0, "-", "-"]
    return [
        set_name,
        param,
        len(trace),
        "{:.6f}".format(trace.min_frequency / 1e9),
        "{:.6f}".format(trace.max_frequency / 1e9),
    ]


def coefficient_table(coeff_sets: Iterable[CoefficientSet]) -> PrettyTable:
    """One row per stored coefficient (set, parameter)."""
    table = PrettyTable()
    table.field_names = ["Set", "Parameter", "Points", "Start (GHz)", "Stop (GHz)"]

    for coeff_set in coeff_sets:
        for port in range(1, coeff_set.ports + 1):
            table.add_row(_trace_row(coeff_set.name, param_name(Standard.OPEN, port), coeff_set.get_open(port)))
            table.add_row(_trace_row(coeff_set.name, param_name(Standard.SHORT, port), coeff_set.get_short(port)))
            table.add_row(_trace_row(coeff_set.name, param_name(Standard.LOAD, port), coeff_set.get_load(port)))
        for port1, port2 in through_pairs(coeff_set.ports):
            table.add_row(_trace_row(
                coeff_set.name,
                param_name(Standard.THROUGH, port1, port2),
                coeff_set.get_through(port1, port2),
            ))
    return table


# ---------------------------------------------------------------------------
# argparse entry point
# ---------------------------------------------------------------------------


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="librecal",
        description="Inspect a LibreCAL and download its calibration coefficients",
    )
    parser.add_argument("--config", default=None, help="YAML config file (default: ./librecal_config.yaml)")
    parser.add_argument("--resource", default=None, help="VISA resource, overrides the config")
    parser.add_argument("--list", action="store_true", help="List connected LibreCAL devices and exit")
    parser.add_argument(
        "--set-port",
        nargs=2,
        metavar=("PORT", "STANDARD"),
        default=None,
        help="Switch PORT to STANDARD (OPEN, SHORT, LOAD, THROUGH, NONE)",
    )
    parser.add_argument("--coefficients", action="store_true", help="Download and summarise coefficient sets")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def _log_progress(percent: int) -> None:
    if percent % 10 == 0:
        logger.info("Coefficient download: %d%%", percent)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    if args.resource:
        config.resource = args.resource

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.list:
        resources = find_devices(config.id_prefix, backend=config.visa_backend)
        if not resources:
            print("No LibreCAL found")
        for resource in resources:
            print(resource)
        return 0

    try:
        device = CalDevice.open(config)
    except (UnrecognizedDeviceError, pyvisa.errors.VisaIOError, OSError) as exc:
        logger.error("Could not open %s: %s", config.resource, exc)
        return 1

    with device:
        try:
            if args.set_port:
                try:
                    port = int(args.set_port[0])
                except ValueError:
                    logger.error("Invalid port: %s", args.set_port[0])
                    return 1
                name = args.set_port[1].upper()
                if name not in Standard.__members__:
                    logger.error("Unknown standard: %s", name)
                    return 1
                if not device.set_standard(port, Standard[name]):
                    return 1

            print(device_table(device))

            if args.coefficients:
                sets = device.update_coefficient_sets(on_progress=_log_progress)
                if not sets:
                    logger.warning("Device reported no coefficient sets (not ready?)")
                print(coefficient_table(sets))
        except pyvisa.errors.VisaIOError as exc:
            logger.error("Communication with %s failed: %s", config.resource, exc)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
