"""
Coefficient acquisition engine.

Downloads every stored coefficient set from a LibreCAL and rebuilds it as
in-memory traces.  The device only exposes per-(set, parameter) point
counts, so a run makes two passes over the same parameter list:

  1. Pre-scan: ``:COEFF:NUM?`` for every set / port / port pair, summed into
     a grand total so progress can be reported across the whole run.
  2. Download: the count is queried again (nothing is cached between the
     passes) and each point is fetched with ``:COEFF:GET?``.

Point records are ``freq,re0,im0[,re1,im1,...]`` with the frequency in GHz.
Two-port records arrive as S11,S21,S12,S22 and are reordered to the
row-major S11,S12,S21,S22 layout of :class:`librecal.model.Trace`.

Malformed numeric fields are read as zero instead of aborting: a run is
thousands of round-trips and one bad field must not lose the rest.

Threading contract: :meth:`CoefficientReader.read` blocks for the whole
run.  Callers wanting a responsive UI run it from a worker thread (see
librecal.workers) and pass a progress callback that emits a Qt signal.
"""

import logging
from typing import Callable, List, Optional

from .model import CoefficientSet, Datapoint, Trace, num_throughs, through_index
from .standard import Standard, standard_to_string

logger = logging.getLogger(__name__)

FACTORY_SET = "FACTORY"
FREQUENCY_SCALE = 1e9  # device reports GHz

ProgressCallback = Callable[[int], None]


# ---------------------------------------------------------------------------
# Wire parsing helpers
# ---------------------------------------------------------------------------


def to_int(text: str) -> int:
    """Parse an integer response, 0 if it is not a plain integer."""
    try:
        return int(text.strip())
    except (ValueError, AttributeError):
        return 0


def to_float(text: str) -> float:
    """Parse a decimal response, 0.0 if it is not a number."""
    try:
        return float(text.strip())
    except (ValueError, AttributeError):
        return 0.0


def param_name(standard: Standard, port1: int, port2: Optional[int] = None) -> str:
    """
    Build the ``<param>`` token of the COEFF commands.

    Examples: ``P1_OPEN``, ``P3_LOAD``, ``P12_THROUGH``.
    """
    if standard is Standard.THROUGH:
        if port2 is None:
            raise ValueError("THROUGH parameter needs two ports")
        return f"P{port1}{port2}_{standard_to_string(standard)}"
    if standard is Standard.NONE:
        raise ValueError("No coefficient is stored for standard NONE")
    return f"P{port1}_{standard_to_string(standard)}"


def parse_point(record: str) -> Datapoint:
    """
    Parse one ``:COEFF:GET?`` response into a datapoint.

    Args:
        record: ``freq,re0,im0,re1,im1,...`` (frequency in GHz)

    Returns:
        Datapoint with the frequency in Hz and the complex values in
        row-major matrix order
    """
    values = record.split(",")
    frequency = to_float(values[0]) * FREQUENCY_SCALE
    s = []
    for j in range((len(values) - 1) // 2):
        real = to_float(values[1 + j * 2])
        imag = to_float(values[2 + j * 2])
        s.append(complex(real, imag))
    if len(s) == 4:
        # wire order is S11,S21,S12,S22
        s[1], s[2] = s[2], s[1]
    return Datapoint(frequency=frequency, s=s)


# ---------------------------------------------------------------------------
# Progress accounting
# ---------------------------------------------------------------------------


class ProgressTracker:
    """
    Integer percentage of points read across a whole run.

    A value is reported only when it differs from the last reported one,
    so a run produces at most 101 notifications in ascending order.  With
    nothing to read (total of zero) nothing is ever reported.
    """

    def __init__(self, total_points: int, callback: Optional[ProgressCallback] = None):
        self.total_points = total_points
        self.read_points = 0
        self.last_percentage: Optional[int] = None
        self._callback = callback

    def start(self) -> None:
        if self.total_points > 0:
            self._report(0)

    def advance(self, count: int = 1) -> None:
        self.read_points += count
        if self.total_points <= 0:
            return
        percentage = min(self.read_points * 100 // self.total_points, 100)
        if percentage != self.last_percentage:
            self._report(percentage)

    def _report(self, percentage: int) -> None:
        self.last_percentage = percentage
        if self._callback is not None:
            self._callback(percentage)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CoefficientReader:
    """
    Runs one acquisition over a command channel.

    Usage:
        reader = CoefficientReader(channel.query, ports=4, on_progress=print)
        sets = reader.read()
    """

    def __init__(
        self,
        query: Callable[[str], str],
        ports: int,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            query: Request/response primitive (``query(command) -> text``)
            ports: Number of device ports
            on_progress: Called with each new integer percentage
        """
        self._query = query
        self.ports = ports
        self._on_progress = on_progress
        self._progress: Optional[ProgressTracker] = None

    def list_sets(self) -> List[str]:
        """
        Names of the coefficient sets stored on the device.

        Returns an empty list if the device is not ready (the listing does
        not start with the FACTORY set).
        """
        response = self._query(":COEFF:LIST?")
        if not response.startswith(FACTORY_SET):
            logger.warning("Unexpected coefficient list response: %r", response)
            return []
        return [name.strip() for name in response.split(",") if name.strip()]

    def point_count(self, set_name: str, param: str) -> int:
        return max(to_int(self._query(f":COEFF:NUM? {set_name} {param}")), 0)

    def _params(self):
        """(standard, port1, port2, param) for every stored coefficient, in read order."""
        for port in range(1, self.ports + 1):
            for standard in (Standard.OPEN, Standard.SHORT, Standard.LOAD):
                yield standard, port, None, param_name(standard, port)
            for port2 in range(port + 1, self.ports + 1):
                yield Standard.THROUGH, port, port2, param_name(Standard.THROUGH, port, port2)

    def count_points(self, set_names: List[str]) -> int:
        """Pre-scan pass: total number of points over all sets and parameters."""
        total = 0
        for name in set_names:
            for _, _, _, param in self._params():
                total += self.point_count(name, param)
        return total

    def read_trace(self, set_name: str, param: str, ports: int) -> Trace:
        """Download one coefficient into a new trace of the given arity."""
        points = self.point_count(set_name, param)
        trace = Trace(ports)
        expected = ports * ports
        for i in range(points):
            point = parse_point(self._query(f":COEFF:GET? {set_name} {param} {i}"))
            if len(point.s) != expected:
                logger.debug(
                    "%s %s point %d: %d values, expected %d",
                    set_name, param, i, len(point.s), expected,
                )
                point.s = (point.s + [0j] * expected)[:expected]
            trace.add_datapoint(point)
            if self._progress is not None:
                self._progress.advance()
        return trace

    def read_set(self, set_name: str) -> CoefficientSet:
        """Download pass for one named set."""
        coeff_set = CoefficientSet(name=set_name, ports=self.ports)
        coeff_set.throughs = [None] * num_throughs(self.ports)
        for standard, port1, port2, param in self._params():
            if standard is Standard.THROUGH:
                trace = self.read_trace(set_name, param, 2)
                coeff_set.throughs[through_index(port1, port2, self.ports)] = trace
            else:
                trace = self.read_trace(set_name, param, 1)
                if standard is Standard.OPEN:
                    coeff_set.opens.append(trace)
                elif standard is Standard.SHORT:
                    coeff_set.shorts.append(trace)
                else:
                    coeff_set.loads.append(trace)
            logger.debug("%s %s: %d points", set_name, param, len(trace))
        return coeff_set

    def read(self) -> List[CoefficientSet]:
        """
        Run the full acquisition.

        Returns:
            One CoefficientSet per stored set, in device listing order.  Empty
            if the device reported it is not ready.
        """
        set_names = self.list_sets()
        if not set_names:
            return []

        total = self.count_points(set_names)
        logger.info(
            "Reading %d coefficient set(s) (%s), %d points total",
            len(set_names), ", ".join(set_names), total,
        )

        self._progress = ProgressTracker(total, self._on_progress)
        self._progress.start()
        try:
            sets = [self.read_set(name) for name in set_names]
        finally:
            self._progress = None

        logger.info("Coefficient read complete: %d set(s)", len(sets))
        return sets
