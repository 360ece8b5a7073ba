"""
LibreCAL device session.

Wraps a :class:`librecal.transport.CommandChannel` and exposes the device
as discrete operations:
  - identity (serial, firmware, port count), queried once at construction
  - per-port standard get/set
  - best-effort telemetry (temperature, heater power, stability)
  - the coefficient sets stored on the device, downloaded on demand

Threading contract: every channel round-trip holds the session I/O lock, so
a telemetry poll from the GUI thread waits for the in-flight query of a
running acquisition instead of interleaving with it.  Only one acquisition
may run at a time; a second update_coefficient_sets() call while one is
running raises UpdateInProgressError.  The coefficient-set collection is
replaced (never mutated) at the end of a run, so readers always see either
the old or the new collection.
"""

import logging
import threading
from typing import Callable, Optional, Tuple

from .acquisition import CoefficientReader, ProgressCallback, to_float, to_int
from .config import CalDeviceConfig
from .model import CoefficientSet, DeviceInfo
from .standard import Standard, available_standards, standard_from_string, standard_to_string
from .transport import CommandChannel, VisaChannel

logger = logging.getLogger(__name__)

DEFAULT_ID_PREFIX = "LibreCAL"


class UnrecognizedDeviceError(RuntimeError):
    """The device did not identify itself as a LibreCAL."""


class UpdateInProgressError(RuntimeError):
    """A coefficient update is already running on this session."""


class CalDevice:
    """
    Session with one LibreCAL.

    Usage:
        with CalDevice.open(config) as dev:
            dev.set_standard(1, Standard.OPEN)
            dev.update_coefficient_sets(on_progress=print)
            for coeff_set in dev.coefficient_sets():
                ...
    """

    def __init__(self, channel: CommandChannel, id_prefix: str = DEFAULT_ID_PREFIX):
        """
        Identify the device and read its capabilities.

        Args:
            channel: Open command channel; owned by the session from now on
            id_prefix: Expected start of the ``*IDN?`` response

        Raises:
            UnrecognizedDeviceError: If ``*IDN?`` does not start with
                ``id_prefix``.  The channel is closed before raising, as it
                is when any identification query fails.
        """
        self._channel = channel
        self._io_lock = threading.RLock()
        self._update_lock = threading.Lock()
        self._coeff_sets: Tuple[CoefficientSet, ...] = ()

        try:
            idn = self._query("*IDN?")
            if not idn.startswith(id_prefix):
                raise UnrecognizedDeviceError(f"Invalid response to *IDN?: {idn}")
            self.idn_string = idn
            self.firmware = self._query(":FIRMWARE?")
            self.num_ports = to_int(self._query(":PORTS?"))
        except Exception:
            channel.close()
            raise

        serial = getattr(channel, "serial", "")
        if not serial:
            parts = [p.strip() for p in idn.split(",")]
            serial = parts[2] if len(parts) > 2 else ""
        self._serial = serial

        logger.info(
            "Connected to %s (serial %s, firmware %s, %d ports)",
            idn, self._serial or "unknown", self.firmware, self.num_ports,
        )

    @classmethod
    def open(cls, config: CalDeviceConfig) -> "CalDevice":
        """Open the configured VISA resource and start a session on it."""
        channel = VisaChannel(
            config.resource,
            read_termination=config.read_termination,
            write_termination=config.write_termination,
            timeout_ms=config.timeout_ms,
            backend=config.visa_backend,
        )
        return cls(channel, id_prefix=config.id_prefix)

    # -----------------------------------------------------------------------
    # Channel access
    # -----------------------------------------------------------------------

    def _query(self, command: str) -> str:
        with self._io_lock:
            return self._channel.query(command)

    def _cmd(self, command: str) -> bool:
        with self._io_lock:
            return self._channel.cmd(command)

    def close(self) -> None:
        with self._io_lock:
            self._channel.close()

    def __enter__(self) -> "CalDevice":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------------

    @property
    def serial(self) -> str:
        return self._serial

    def get_firmware(self) -> str:
        return self.firmware

    def get_num_ports(self) -> int:
        return self.num_ports

    def info(self) -> DeviceInfo:
        return DeviceInfo(
            serial=self._serial,
            firmware=self.firmware,
            ports=self.num_ports,
            idn_string=self.idn_string,
        )

    # -----------------------------------------------------------------------
    # Standards
    # -----------------------------------------------------------------------

    @staticmethod
    def available_standards():
        return available_standards()

    def get_standard(self, port: int) -> Standard:
        """Standard currently applied to ``port`` (NONE if the reply is unknown)."""
        return standard_from_string(self._query(f":PORT? {port}"))

    def set_standard(self, port: int, standard: Standard) -> bool:
        """
        Switch ``port`` to ``standard``.

        Returns:
            True if the device acknowledged the command
        """
        ok = self._cmd(f":PORT {port} {standard_to_string(standard)}")
        if not ok:
            logger.warning("Device rejected %s on port %d", standard.value, port)
        return ok

    # -----------------------------------------------------------------------
    # Telemetry (best-effort: unparsable replies read as zero)
    # -----------------------------------------------------------------------

    def get_temperature(self) -> float:
        return to_float(self._query(":TEMP?"))

    def stabilized(self) -> bool:
        return self._query(":TEMPerature:STABLE?") == "TRUE"

    def get_heater_power(self) -> float:
        return to_float(self._query(":HEATER:POWER?"))

    # -----------------------------------------------------------------------
    # Coefficients
    # -----------------------------------------------------------------------

    @property
    def update_in_progress(self) -> bool:
        return self._update_lock.locked()

    def coefficient_sets(self) -> Tuple[CoefficientSet, ...]:
        return self._coeff_sets

    def update_coefficient_sets(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_done: Optional[Callable[[], None]] = None,
    ) -> Tuple[CoefficientSet, ...]:
        """
        Download all coefficient sets from the device (blocking).

        The previous collection is replaced as a whole when the run finishes.
        If the device is not ready the new collection is empty.  If the
        channel fails mid-run the previous collection is kept and the
        exception propagates.

        Args:
            on_progress: Called with each new integer percentage (0..100)
            on_done: Called exactly once when the run ends, on every path

        Returns:
            The new coefficient-set collection

        Raises:
            UpdateInProgressError: If another update is running on this session
        """
        if not self._update_lock.acquire(blocking=False):
            raise UpdateInProgressError("Coefficient update already in progress")
        try:
            reader = CoefficientReader(self._query, self.num_ports, on_progress)
            self._coeff_sets = tuple(reader.read())
            return self._coeff_sets
        finally:
            self._update_lock.release()
            if on_done is not None:
                on_done()

    def has_modified_coefficients(self) -> bool:
        """True if any trace of any kind in any set was edited after download."""
        for coeff_set in self._coeff_sets:
            if coeff_set.has_modified_traces():
                return True
        return False
