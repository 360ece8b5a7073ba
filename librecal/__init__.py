"""
LibreCAL host library.

Drives a LibreCAL calibration module over its USB command channel and
downloads the stored Open/Short/Load/Through coefficients as in-memory
S-parameter traces.
"""

from .standard import Standard, standard_from_string, standard_to_string, available_standards
from .model import CoefficientSet, Datapoint, DeviceInfo, Trace, through_index, through_pairs
from .caldevice import CalDevice, UnrecognizedDeviceError, UpdateInProgressError

__version__ = "0.1.0"
