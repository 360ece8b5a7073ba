"""
Calibration standard vocabulary shared with the LibreCAL firmware.

The switch controller on the device and this host library both name the
standards with the same five ASCII tokens.  The tokens travel verbatim in
the ``:PORT`` / ``:PORT?`` commands, so they must stay byte-identical to the
firmware's ``StandardName()`` table:

    OPEN  SHORT  LOAD  THROUGH  NONE

The mapping is explicit (enum value -> token) rather than relying on the
ordinal position of the enum members on either side of the link.
"""

from enum import Enum
from typing import List


class Standard(Enum):
    """Calibration standard applied to a port (or a port pair for THROUGH)."""

    OPEN = "OPEN"
    SHORT = "SHORT"
    LOAD = "LOAD"
    THROUGH = "THROUGH"
    NONE = "NONE"


def standard_to_string(standard: Standard) -> str:
    """
    Encode a standard as its wire token.

    Args:
        standard: Member of :class:`Standard`

    Returns:
        Token understood by the firmware (e.g. ``"SHORT"``)

    Raises:
        ValueError: If ``standard`` is not a :class:`Standard` member
    """
    if not isinstance(standard, Standard):
        raise ValueError(f"Not a calibration standard: {standard!r}")
    return standard.value


def standard_from_string(text: str) -> Standard:
    """
    Decode a wire token into a standard.

    Unknown tokens decode to ``Standard.NONE`` so an unexpected device
    response never aborts the caller.
    """
    for standard in Standard:
        if text == standard_to_string(standard):
            return standard
    return Standard.NONE


def available_standards() -> List[Standard]:
    """Standards selectable on a single port, in display order."""
    return [Standard.NONE, Standard.OPEN, Standard.SHORT, Standard.LOAD, Standard.THROUGH]
