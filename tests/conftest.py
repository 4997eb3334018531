"""
Pytest configuration for fuel dispenser tests.

This conftest.py adds the repository root to sys.path so that tests can
import the package without installing it, and provides in-memory test
doubles for channels and the clock.
"""

import asyncio
import sys
from collections import deque
from pathlib import Path
from typing import Callable, Iterable, Optional

import pytest


# Add the repository root to sys.path for proper imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from fuel_dispenser.core.value_objects import Message  # noqa: E402


Responder = Callable[[Message], Optional[Iterable[str]]]


class FakeChannel:
    """
    Scripted in-memory channel.

    Records every sent message; inbound lines are pushed by the test or
    produced by a responder called on each send. ``receive`` never
    blocks, so a missing reply behaves like an immediate timeout.
    """

    def __init__(
        self,
        name: str = "fake",
        connected: bool = True,
        latest: bool = False,
        responder: Optional[Responder] = None,
    ) -> None:
        self._name = name
        self.connected = connected
        self.latest = latest
        self.responder = responder
        self.sent: list[Message] = []
        self.inbox: deque[Message] = deque()
        self.start_count = 0
        self.close_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def sent_contents(self) -> list[str]:
        return [message.content for message in self.sent]

    def push(self, *contents: str) -> None:
        """Queue inbound lines as if the peer had sent them."""
        for content in contents:
            if self.latest:
                self.inbox.clear()
            self.inbox.append(Message(content, device=self._name))

    async def start(self) -> None:
        self.start_count += 1

    def send(self, message: Message) -> bool:
        if not self.connected:
            return False
        self.sent.append(message)
        if self.responder is not None:
            self.push(*(self.responder(message) or []))
        return True

    def try_receive(self) -> Optional[Message]:
        return self.inbox.popleft() if self.inbox else None

    async def receive(self, timeout: float) -> Optional[Message]:
        await asyncio.sleep(0)
        return self.try_receive()

    async def close(self) -> None:
        self.close_count += 1


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_channel() -> Callable[..., FakeChannel]:
    """Factory fixture for FakeChannel instances."""
    return FakeChannel


@pytest.fixture
def clock() -> FakeClock:
    """Fresh fake clock."""
    return FakeClock()
