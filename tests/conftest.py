"""
Pytest configuration and fixtures for blindrelay tests.

Provides common fixtures and test utilities for unit and integration tests.
"""

import asyncio
from collections import deque
from typing import Callable, List

import pytest

from blindrelay.crypto import KeyPair
from blindrelay.envelope import Envelope
from blindrelay.errors import TransportClosed
from blindrelay.protocol import Protocol
from blindrelay.session import PeerSession, SessionEvent


class FakeConnection:
    """In-memory stand-in for a relay connection.

    Frames are decoded on arrival so tests can compare envelopes.
    """

    def __init__(self, name: str, fail: bool = False, delay: float = 0.0):
        self.name = name
        self.fail = fail
        self.delay = delay
        self.closed = False
        self.received: List[Envelope] = []
        self.frames: List[bytes] = []

    async def send(self, frame: bytes) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail or self.closed:
            raise TransportClosed("simulated transport failure")
        envelope, _ = Protocol.unpack_frame(frame)
        self.frames.append(frame)
        self.received.append(envelope)

    async def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"<FakeConnection {self.name}>"


class LoopbackRoom:
    """Synchronous room that delivers every envelope to every session.

    Mirrors the relay: no sender exclusion, replies are queued behind
    envelopes already in flight.
    """

    def __init__(self):
        self.sessions: List[PeerSession] = []
        self.log: List[Envelope] = []

    def join(self, session: PeerSession) -> None:
        self.sessions.append(session)
        self.deliver(session.start())

    def deliver(self, envelopes: List[Envelope]) -> None:
        queue = deque(envelopes)
        while queue:
            envelope = queue.popleft()
            self.log.append(envelope)
            for session in list(self.sessions):
                queue.extend(session.handle(envelope))


class EventRecorder:
    """Collects session events."""

    def __init__(self):
        self.events: List[SessionEvent] = []

    def __call__(self, event: SessionEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[SessionEvent]:
        return [e for e in self.events if e.type == event_type]


@pytest.fixture
def alice_keys() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture
def bob_keys() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture
def room() -> LoopbackRoom:
    return LoopbackRoom()


@pytest.fixture
def make_session() -> Callable[..., PeerSession]:
    """
    Factory for sessions with an attached EventRecorder at ``session.recorder``.
    """

    def factory(name: str, room_name: str = "r1", pairwise: bool = False) -> PeerSession:
        session = PeerSession(name, room_name, pairwise=pairwise)
        session.recorder = EventRecorder()
        session.add_listener(session.recorder)
        return session

    return factory


@pytest.fixture
def wait_until():
    """Poll a predicate from async tests until it holds or the timeout expires."""

    async def waiter(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return waiter


@pytest.fixture
def fake_connection() -> Callable[..., FakeConnection]:
    return FakeConnection


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        if "unit" in str(item.path):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.path):
            item.add_marker(pytest.mark.integration)
