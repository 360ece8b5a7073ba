"""
Command channel to a LibreCAL.

The device enumerates as a USB-CDC serial port and speaks a line-based
SCPI-like protocol: one command line out, one response line back.  This
module only provides the request/response primitive consumed by
:class:`librecal.caldevice.CalDevice`:

  - query(command) -> response text
  - cmd(command)   -> True if the device acknowledged with an empty line

The channel is strictly one-request-at-a-time.  Serialising access from
several threads is the session's job (see CalDevice), not the channel's.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import pyvisa

logger = logging.getLogger(__name__)

DEFAULT_VISA_BACKEND = "@py"
DEFAULT_READ_TERMINATION = "\r\n"
DEFAULT_WRITE_TERMINATION = "\r\n"
DEFAULT_TIMEOUT_MS = 2000


class CommandChannel(ABC):
    """Synchronous request/response link to a device."""

    #: Hardware serial number if the transport knows it (USB descriptor etc.)
    serial: str = ""

    @abstractmethod
    def query(self, command: str) -> str:
        """Send ``command`` and return the response line (terminator stripped)."""
        ...

    @abstractmethod
    def cmd(self, command: str) -> bool:
        """Send ``command`` and report whether the device acknowledged it."""
        ...

    def close(self) -> None:
        """Release the underlying resource."""


class VisaChannel(CommandChannel):
    """
    CommandChannel over a pyvisa serial resource.

    Usage:
        channel = VisaChannel("ASRL/dev/ttyACM0::INSTR")
        print(channel.query("*IDN?"))
        channel.close()
    """

    def __init__(
        self,
        resource: str,
        read_termination: str = DEFAULT_READ_TERMINATION,
        write_termination: str = DEFAULT_WRITE_TERMINATION,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        backend: str = DEFAULT_VISA_BACKEND,
        resource_manager: Optional[pyvisa.ResourceManager] = None,
    ):
        """
        Open the serial resource.

        Args:
            resource: VISA resource name, e.g. ``ASRL/dev/ttyACM0::INSTR``
                or ``ASRL3::INSTR``
            read_termination: Line terminator of device responses
            write_termination: Line terminator appended to commands
            timeout_ms: Per-read timeout in milliseconds
            backend: pyvisa backend (``"@py"`` = pyvisa-py)
            resource_manager: Existing ResourceManager to reuse

        Raises:
            pyvisa.errors.VisaIOError: If the resource cannot be opened
        """
        self.resource_name = resource
        self._rm = resource_manager or pyvisa.ResourceManager(backend)
        self._inst = self._rm.open_resource(resource)
        self._inst.read_termination = read_termination
        self._inst.write_termination = write_termination
        self._inst.timeout = timeout_ms
        logger.debug("Opened %s (timeout %d ms)", resource, timeout_ms)

    def query(self, command: str) -> str:
        response = self._inst.query(command)
        logger.debug("%s -> %s", command, response)
        return response.strip()

    def cmd(self, command: str) -> bool:
        return self.query(command) == ""

    def close(self) -> None:
        if self._inst is None:
            return
        try:
            self._inst.close()
        except pyvisa.errors.VisaIOError as exc:
            logger.warning("Closing %s failed: %s", self.resource_name, exc)
        self._inst = None
        logger.debug("Closed %s", self.resource_name)


def find_devices(
    id_prefix: str = "LibreCAL",
    backend: str = DEFAULT_VISA_BACKEND,
    timeout_ms: int = 500,
) -> List[str]:
    """
    Probe all serial resources for LibreCAL devices.

    Each ASRL resource is opened, asked ``*IDN?`` and closed again.  Ports
    that do not answer (or answer with another identification) are skipped.

    Args:
        id_prefix: Expected start of the ``*IDN?`` response
        backend: pyvisa backend
        timeout_ms: Per-port probe timeout

    Returns:
        Resource names of the detected devices
    """
    rm = pyvisa.ResourceManager(backend)
    found = []
    try:
        for resource in rm.list_resources("ASRL?*::INSTR"):
            channel = None
            try:
                channel = VisaChannel(resource, timeout_ms=timeout_ms, resource_manager=rm)
                idn = channel.query("*IDN?")
            except (pyvisa.errors.VisaIOError, OSError, ValueError) as exc:
                logger.debug("Probe of %s failed: %s", resource, exc)
                continue
            finally:
                if channel is not None:
                    channel.close()
            if idn.startswith(id_prefix):
                logger.info("Found %s on %s", idn, resource)
                found.append(resource)
            else:
                logger.debug("Skipping %s: %s", resource, idn)
    finally:
        rm.close()
    return found
