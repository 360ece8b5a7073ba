import pytest

from fake_librecal import FakeLibreCAL, full_set


@pytest.fixture
def fake_device():
    return FakeLibreCAL(ports=2, coefficients={"FACTORY": full_set(2)})
