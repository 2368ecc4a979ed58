"""Shared fixtures for guard tests."""

from typing import List, Optional

import pytest

from guard.app.services.identity import Identity, IdentityProvider


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentityProvider(IdentityProvider):
    """Identity provider double that records every call."""

    def __init__(self, identity: Optional[Identity] = None, error: Optional[Exception] = None):
        self.identity = identity
        self.error = error
        self.calls: List[tuple] = []

    def current_identity(self) -> Optional[Identity]:
        return self.identity

    async def login(self, email: str, password: str) -> Optional[Identity]:
        self.calls.append(("login", email, password))
        if self.error is not None:
            raise self.error
        self.identity = Identity(id="user-1", email=email)
        return self.identity

    async def register(self, name: str, email: str, password: str) -> Optional[Identity]:
        self.calls.append(("register", name, email, password))
        if self.error is not None:
            raise self.error
        self.identity = Identity(id="user-2", email=email, name=name)
        return self.identity


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def identity():
    return Identity(id="user-1", email="driver@fleet.example")


@pytest.fixture
def provider():
    return FakeIdentityProvider()
