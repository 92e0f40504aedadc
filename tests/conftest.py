"""Shared fixtures for the SessionAuth test suite."""
from datetime import datetime, timedelta, timezone

import pytest

from sessionauth.core.auth.credential_vault import CredentialVault
from sessionauth.core.auth.session_control import SessionStore
from sessionauth.core.crypto.kdf import CredentialHasher

# Minimum accepted iteration count keeps the suite fast
FAST_ITERATIONS = 1000


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def hasher():
    """Hasher with production lengths and a low iteration count."""
    return CredentialHasher(iterations=FAST_ITERATIONS)


@pytest.fixture
def vault_path(tmp_path):
    return tmp_path / "config" / "auth.tokens"


@pytest.fixture
def vault(vault_path, hasher):
    return CredentialVault(vault_path, hasher=hasher)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """Session store on a fake clock with no background sweeper."""
    s = SessionStore(
        default_ttl=timedelta(hours=1),
        sweep_interval=timedelta(seconds=10),
        clock=clock,
        autostart=False,
    )
    yield s
    s.stop()
