"""
tests/conftest.py - shared fixtures: a fake clock scheduler and mocked
provisioner/messenger collaborators.
"""

from typing import Any, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from bot import LifecycleManager, ServerCommands, ServerConfig, ServerRegistry


class FakeTimer:
    def __init__(self, deadline: float, seq: int, callback: Any) -> None:
        self.deadline = deadline
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False


class FakeScheduler:
    """Simulated clock. Timers only fire inside advance()."""

    def __init__(self) -> None:
        self.now: float = 0.0
        self.timers: List[FakeTimer] = []

    def schedule(self, delay: float, callback: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, len(self.timers), callback)
        self.timers.append(timer)
        return timer

    def cancel(self, handle: FakeTimer) -> None:
        handle.cancelled = True

    @property
    def armed(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted(
                (t for t in self.armed if t.deadline <= target),
                key=lambda t: (t.deadline, t.seq),
            )
            if not due:
                break
            timer = due[0]
            self.now = timer.deadline
            timer.fired = True
            await timer.callback()
        self.now = target


SERVERS: List[ServerConfig] = [
    {"region": "west", "resource": "overload-west", "address": "10.0.0.2"},
    {"region": "east", "resource": "overload-east", "address": "10.0.0.1"},
    {"region": "europe", "resource": "overload-eu", "address": "10.0.0.3:7003"},
]


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def provisioner() -> MagicMock:
    mock = MagicMock()
    mock.start = AsyncMock()
    mock.stop = AsyncMock()
    return mock


@pytest.fixture
def messenger() -> MagicMock:
    mock = MagicMock()
    mock.send_text = AsyncMock()
    mock.send_embed = AsyncMock()
    return mock


@pytest.fixture
def registry() -> ServerRegistry:
    return ServerRegistry(SERVERS)


@pytest.fixture
def manager(registry, provisioner, messenger, scheduler) -> LifecycleManager:
    return LifecycleManager(
        registry=registry,
        provisioner=provisioner,
        messenger=messenger,
        scheduler=scheduler,
    )


@pytest.fixture
def server_commands(manager, messenger) -> ServerCommands:
    return ServerCommands(manager=manager, messenger=messenger, embed_title="Server Status")


@pytest.fixture
def channel() -> MagicMock:
    mock = MagicMock()
    mock.send = AsyncMock()
    return mock


@pytest.fixture
def user() -> MagicMock:
    mock = MagicMock()
    mock.mention = "<@42>"
    return mock
