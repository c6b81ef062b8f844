# tests/conftest.py
"""
Shared fixtures: every test gets a fresh challenge store and writes its audit
trail to a temporary file.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import settings
from app.x402.models import Challenge, Pricing
from app.x402.store import InMemoryChallengeStore, reset_challenge_store


class FakeClock:
    """Controllable clock for expiry tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Point the audit log at a temp file and reset the default store."""
    monkeypatch.setattr(settings, "X402_AUDIT_LOG_PATH", str(tmp_path / "audit.jsonl"))
    monkeypatch.setattr(settings, "X402_AUDIT_ENABLED", True)
    monkeypatch.setattr(settings, "X402_VERIFY_PAYMENTS", False)
    monkeypatch.setattr(settings, "X402_SINGLE_USE_REDEMPTION", False)
    monkeypatch.setattr(settings, "X402_PAID_RETENTION_SECONDS", None)
    reset_challenge_store()
    yield
    reset_challenge_store()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryChallengeStore(challenge_ttl_seconds=600, clock=clock)


@pytest.fixture
def pricing():
    return Pricing(
        amount="0.01",
        token="SOL",
        network="solana-devnet",
        recipient="RecipientWallet1111111111111111111111111111",
        decimals=9,
    )


@pytest.fixture
def make_challenge(clock, pricing):
    """Factory for Created challenges stamped with the fake clock."""

    def _make(check_id="check-1", submission=None):
        return Challenge(
            id=check_id,
            submission=submission or {"name": "Riya", "handle": "", "platform": "tinder", "bio": ""},
            pricing=pricing,
            created_at=clock(),
        )

    return _make
