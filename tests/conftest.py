"""Shared fixtures for relay tests."""
import pytest
from callbackrelay.core.engine import DeliveryEngine
from callbackrelay.core.subscriber import Subscriber
from callbackrelay.services.relay import engine


class FakeClock:
    """Manually advanced epoch-second clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSubscriber(Subscriber):
    """Subscriber that records pushed payloads instead of sending them."""

    def __init__(self, handle_id: str, open: bool = True):
        self.handle_id = handle_id
        self.open = open
        self.received = []

    @property
    def is_open(self) -> bool:
        return self.open

    def push(self, payload):
        self.received.append(payload)


@pytest.fixture(autouse=True)
def reset_global_relay():
    """Start every test with an empty process-wide relay."""
    engine.reset()
    yield
    engine.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def relay(clock):
    return DeliveryEngine(retention_seconds=300.0, clock=clock)


@pytest.fixture
def make_subscriber():
    def _make(handle_id: str = "h1", open: bool = True) -> RecordingSubscriber:
        return RecordingSubscriber(handle_id, open=open)

    return _make
