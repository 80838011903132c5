import pytest

from bytegate.app.middleware.rate_limit import AdmissionController


class FakeClock:
    """Manually advanced clock returning epoch milliseconds."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller(clock):
    return AdmissionController(clock=clock)
