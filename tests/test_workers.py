"""
Worker tests call run() directly on the test thread: signals connected to
plain callables are then delivered synchronously, in emission order.
"""

import pytest
from PySide6.QtCore import QCoreApplication

from librecal.caldevice import CalDevice
from librecal.workers import CoefficientUpdateWorker, TelemetryWorker

from fake_librecal import FakeLibreCAL, reflect_points


@pytest.fixture(scope="module")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def _record(worker, events):
    worker.percent_changed.connect(lambda pct: events.append(pct))
    worker.update_done.connect(lambda: events.append("done"))
    worker.error_occurred.connect(lambda msg: events.append(("error", msg)))


def test_progress_then_done(qapp):
    channel = FakeLibreCAL(ports=1, coefficients={"FACTORY": {"P1_OPEN": reflect_points(10)}})
    device = CalDevice(channel)
    worker = CoefficientUpdateWorker(device)
    events = []
    _record(worker, events)

    worker.run()

    assert events == list(range(0, 101, 10)) + ["done"]
    assert len(device.coefficient_sets()) == 1


def test_zero_points_only_done(qapp):
    device = CalDevice(FakeLibreCAL(ports=2, coefficients={"FACTORY": {}}))
    worker = CoefficientUpdateWorker(device)
    events = []
    _record(worker, events)

    worker.run()

    assert events == ["done"]


def test_not_ready_only_done(qapp):
    device = CalDevice(FakeLibreCAL(coeff_list="NOTREADY"))
    worker = CoefficientUpdateWorker(device)
    events = []
    _record(worker, events)

    worker.run()

    assert events == ["done"]
    assert device.coefficient_sets() == ()


def test_channel_failure_reports_error_then_done(qapp):
    channel = FakeLibreCAL(ports=1, coefficients={"FACTORY": {"P1_OPEN": reflect_points(2)}})
    device = CalDevice(channel)

    def broken(command):
        raise OSError("device unplugged")

    channel.query = broken
    worker = CoefficientUpdateWorker(device)
    events = []
    _record(worker, events)

    worker.run()

    assert events[-1] == "done"
    assert events[0][0] == "error"
    assert "device unplugged" in events[0][1]


def test_telemetry_poll_once(qapp):
    device = CalDevice(FakeLibreCAL())
    worker = TelemetryWorker(device, interval_s=0.01)
    samples = []
    worker.telemetry.connect(lambda t, p, s: samples.append((t, p, s)))

    worker.poll_once()

    assert samples == [(35.0, 0.125, True)]


def test_telemetry_stops_when_cancelled(qapp):
    device = CalDevice(FakeLibreCAL())
    worker = TelemetryWorker(device, interval_s=0.01)
    samples = []
    worker.telemetry.connect(lambda t, p, s: samples.append(t))
    worker.telemetry.connect(lambda t, p, s: worker.stop())

    worker.run()

    assert samples == [35.0]
