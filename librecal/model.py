"""
Model layer for LibreCAL coefficient data.

Pure Python - NO Qt dependencies. This module holds the in-memory
representation of the calibration coefficients stored on the device and
the port-pair addressing used to file THROUGH traces.  It is unit-testable
without a GUI or a device.

Storage layout of one coefficient set for a P-port device:
  - opens / shorts / loads: one 1-port trace per port (index = port - 1)
  - throughs: one 2-port trace per unordered port pair, P*(P-1)/2 in total,
    ordered (1,2), (1,3), ..., (1,P), (2,3), ..., (P-1,P)
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple
import numpy as np


# ---------------------------------------------------------------------------
# Port-pair addressing
# ---------------------------------------------------------------------------


def num_throughs(ports: int) -> int:
    """Number of THROUGH slots for a device with ``ports`` ports."""
    if ports < 2:
        return 0
    return ports * (ports - 1) // 2


def through_pairs(ports: int) -> Iterator[Tuple[int, int]]:
    """
    Yield every valid port pair in storage order.

    Args:
        ports: Number of device ports

    Yields:
        ``(port1, port2)`` tuples with ``port1 < port2``, smaller port first
    """
    for port1 in range(1, ports + 1):
        for port2 in range(port1 + 1, ports + 1):
            yield port1, port2


def through_index(port1: int, port2: int, ports: int) -> Optional[int]:
    """
    Map a port pair to its slot in the THROUGH sequence.

    The pairs form the upper triangle (no diagonal) of a ``ports x ports``
    matrix, read row by row.  Row ``k`` holds ``ports - k`` entries, so the
    slot of ``(a, b)`` is ``sum_{k=1}^{a-1} (ports - k) + (b - a - 1)``.

    Args:
        port1: Smaller port number (1-based)
        port2: Larger port number (1-based)
        ports: Number of device ports

    Returns:
        Zero-based slot index, or None if the pair is not a valid
        ``1 <= port1 < port2 <= ports`` pair
    """
    if port1 < 1 or port2 > ports or port1 >= port2:
        return None
    row_offset = (port1 - 1) * ports - (port1 - 1) * port1 // 2
    return row_offset + (port2 - port1 - 1)


# ---------------------------------------------------------------------------
# S-parameter traces
# ---------------------------------------------------------------------------


@dataclass
class Datapoint:
    """One frequency sample of an S-parameter matrix (row-major, flattened)."""

    frequency: float  # Hz
    s: List[complex] = field(default_factory=list)


class Trace:
    """
    Frequency-ordered S-parameter data of a fixed port count.

    Points are kept in acquisition order, which the device delivers in
    ascending frequency.  ``modified`` is only ever set by downstream
    editing; freshly acquired traces are unmodified.
    """

    def __init__(self, ports: int):
        if ports < 1:
            raise ValueError(f"Trace needs at least one port, got {ports}")
        self.ports = ports
        self.modified = False
        self._points: List[Datapoint] = []

    def add_datapoint(self, point: Datapoint) -> None:
        """
        Append a datapoint.

        Raises:
            ValueError: If the point does not carry ``ports**2`` values
        """
        expected = self.ports * self.ports
        if len(point.s) != expected:
            raise ValueError(
                f"{self.ports}-port trace expects {expected} values per point, "
                f"got {len(point.s)}"
            )
        self._points.append(point)

    def points(self) -> List[Datapoint]:
        return list(self._points)

    def point(self, index: int) -> Datapoint:
        return self._points[index]

    def __len__(self) -> int:
        return len(self._points)

    @property
    def frequencies(self) -> np.ndarray:
        """Frequency axis in Hz."""
        return np.array([p.frequency for p in self._points], dtype=float)

    @property
    def s_parameters(self) -> np.ndarray:
        """Complex S-parameters, shape ``[n_points, ports, ports]``."""
        if not self._points:
            return np.zeros((0, self.ports, self.ports), dtype=complex)
        flat = np.array([p.s for p in self._points], dtype=complex)
        return flat.reshape(len(self._points), self.ports, self.ports)

    @property
    def min_frequency(self) -> float:
        return self._points[0].frequency if self._points else 0.0

    @property
    def max_frequency(self) -> float:
        return self._points[-1].frequency if self._points else 0.0

    def __repr__(self) -> str:
        return f"Trace(ports={self.ports}, points={len(self)}, modified={self.modified})"


@dataclass
class CoefficientSet:
    """Named bundle of calibration traces for every port and port pair."""

    name: str
    ports: int
    opens: List[Trace] = field(default_factory=list)
    shorts: List[Trace] = field(default_factory=list)
    loads: List[Trace] = field(default_factory=list)
    throughs: List[Trace] = field(default_factory=list)

    def _per_port(self, traces: List[Trace], port: int) -> Optional[Trace]:
        if port < 1 or port > self.ports or port > len(traces):
            return None
        return traces[port - 1]

    def get_open(self, port: int) -> Optional[Trace]:
        return self._per_port(self.opens, port)

    def get_short(self, port: int) -> Optional[Trace]:
        return self._per_port(self.shorts, port)

    def get_load(self, port: int) -> Optional[Trace]:
        return self._per_port(self.loads, port)

    def get_through(self, port1: int, port2: int) -> Optional[Trace]:
        """
        Look up the THROUGH trace of a port pair.

        Args:
            port1: Smaller port number
            port2: Larger port number

        Returns:
            The stored trace, or None for an invalid pair (reversed order,
            equal ports, or a port outside ``1..ports``)
        """
        index = through_index(port1, port2, self.ports)
        if index is None or index >= len(self.throughs):
            return None
        return self.throughs[index]

    def traces(self) -> Iterator[Trace]:
        """Iterate every trace: opens, shorts, loads, then throughs."""
        for group in (self.opens, self.shorts, self.loads, self.throughs):
            for trace in group:
                yield trace

    def has_modified_traces(self) -> bool:
        return any(trace.modified for trace in self.traces())


@dataclass
class DeviceInfo:
    """LibreCAL identity, as reported at connection time."""

    serial: str = ""
    firmware: str = ""
    ports: int = 0
    idn_string: str = ""

    def to_dict(self) -> dict:
        return {
            "serial": self.serial,
            "firmware": self.firmware,
            "ports": self.ports,
            "idn": self.idn_string,
        }
