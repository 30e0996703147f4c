import os
from datetime import datetime, timedelta, timezone

import pytest

# Keep the API module from writing a snapshot into the working tree on import.
os.environ.setdefault("AUTOSAVE", "false")
os.environ.setdefault("ASSISTANT_AUTOPOST", "false")

from NexLink.core.store import SocialStore


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def store(clock) -> SocialStore:
    return SocialStore(clock=clock)


@pytest.fixture()
def make_user(store):
    def _make(name: str, email: str = None, password: str = "pw"):
        email = email or f"{name.replace(' ', '').lower()}@x.com"
        return store.signup(name, email, password)

    return _make
