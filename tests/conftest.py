from datetime import datetime, timedelta, timezone

import pytest

from shieldbot.errors import DeliveryError
from shieldbot.schedule import ScheduleState
from shieldbot.storage import ConfigStore


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def deliver(self, channel_id: str, role_id: str) -> None:
        self.calls.append((channel_id, role_id))
        if self.fail:
            raise DeliveryError("Target channel not found or not text-based.")


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "config.json")


@pytest.fixture
def store(config_path):
    return ConfigStore(config_path, defaults_path=None, env={})


@pytest.fixture
def clock():
    return FakeClock(utc(2026, 2, 1, 12, 0))


@pytest.fixture
def state(store, clock):
    return ScheduleState(store, clock=clock)


@pytest.fixture
def notifier():
    return FakeNotifier()
