"""
Qt background workers for LibreCAL sessions.

All device traffic blocks on the serial link, and a full coefficient
download is thousands of round-trips.  These workers run that traffic off
the GUI thread and report back through Qt signals, which Qt delivers to the
receiving thread's event loop.

Worker threads:
  - CoefficientUpdateWorker: one coefficient download (progress + done)
  - TelemetryWorker: periodic temperature / heater / stability polling

A download cannot be cancelled once started.  The session's own guard
(CalDevice.update_in_progress) prevents two downloads from overlapping.
"""

import logging
import threading
import traceback

from PySide6.QtCore import QThread, Signal

from .caldevice import CalDevice

logger = logging.getLogger(__name__)


class CoefficientUpdateWorker(QThread):
    """
    Background worker for CalDevice.update_coefficient_sets().

    For a successful run every percent_changed emission precedes the single
    update_done emission.  update_done is emitted on every path (success,
    device-not-ready, channel failure) so nothing waits on it forever.
    """

    percent_changed = Signal(int)  # 0..100
    update_done = Signal()
    error_occurred = Signal(str)  # error message + traceback

    def __init__(self, device: CalDevice, parent=None):
        super().__init__(parent)
        self.device = device

    def run(self):
        try:
            sets = self.device.update_coefficient_sets(on_progress=self.percent_changed.emit)
            logger.info("Coefficient update finished: %d set(s)", len(sets))
        except Exception as e:
            logger.error("Coefficient update failed: %s", e)
            error_msg = f"{str(e)}\n\n{traceback.format_exc()}"
            self.error_occurred.emit(error_msg)
        finally:
            self.update_done.emit()


class TelemetryWorker(QThread):
    """
    Polls the heater telemetry until stopped.

    Emits telemetry(temperature_c, heater_power_w, stabilized) every
    ``interval_s`` seconds.
    """

    telemetry = Signal(float, float, bool)
    error_occurred = Signal(str)

    def __init__(self, device: CalDevice, interval_s: float = 1.0, parent=None):
        super().__init__(parent)
        self.device = device
        self.interval_s = interval_s
        self._cancel_event = threading.Event()

    def stop(self):
        """
        Request shutdown of the polling loop.

        Call wait() after this to block until the thread finishes.
        """
        self._cancel_event.set()

    def poll_once(self):
        temperature = self.device.get_temperature()
        power = self.device.get_heater_power()
        stable = self.device.stabilized()
        self.telemetry.emit(temperature, power, stable)

    def run(self):
        try:
            while not self._cancel_event.is_set():
                self.poll_once()
                if self._cancel_event.wait(timeout=self.interval_s):
                    break
        except Exception as e:
            logger.warning("Telemetry polling stopped: %s", e)
            self.error_occurred.emit(str(e))
