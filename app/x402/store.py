# app/x402/store.py
"""
Challenge storage for the x402 payment gateway.

The store is the single owner of challenge records. Every read returns an
immutable snapshot and every state change is a check-and-set performed under
the record's own lock, so a payment callback and a redemption poll racing on
the same id never observe a torn state.

Configuration:
- X402_CHALLENGE_TTL_SECONDS: Lifetime of an unpaid challenge
- X402_PAID_RETENTION_SECONDS: Optional cap on how long paid challenges stay
  redeemable (unset = kept for the life of the store)

Transaction references bound to a challenge are never released, so a payment
proof cannot be replayed for another challenge even after its record is purged.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from app.core.config import settings
from app.x402.errors import AlreadyRedeemed, NotFound, PaymentNotVerified, PaymentRequired
from app.x402.models import Challenge, ChallengeState

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeStore(ABC):
    """Storage contract used by the issuer, recorder and redemption gate."""

    @abstractmethod
    def add(self, challenge: Challenge) -> Challenge:
        """Persist a new challenge. Raises ValueError if the id is taken."""

    @abstractmethod
    def get(self, check_id: str) -> Challenge:
        """Return the current snapshot. Raises NotFound for unknown/expired ids."""

    @abstractmethod
    def mark_paid(self, check_id: str, transaction_ref: Optional[str] = None) -> Tuple[Challenge, bool]:
        """
        Transition Created -> Paid.

        Returns the resulting snapshot and whether this call changed the state.
        Already paid or redeemed challenges are returned unchanged.
        """

    @abstractmethod
    def mark_redeemed(self, check_id: str) -> Challenge:
        """Transition Paid -> Redeemed for single-use redemption."""

    @abstractmethod
    def expires_at(self, challenge: Challenge) -> Optional[datetime]:
        """When the challenge stops being addressable, or None if it never does."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop expired records, returning how many were removed."""


@dataclass
class _ChallengeSlot:
    """Holds the current snapshot of one challenge and the lock guarding it."""
    challenge: Challenge
    lock: threading.Lock = field(default_factory=threading.Lock)


class InMemoryChallengeStore(ChallengeStore):
    """
    Process-local challenge store.

    Uses a lock per challenge for state transitions and a separate index lock
    for insertion, lookup and removal. Expired records are swept lazily.
    """

    def __init__(
        self,
        challenge_ttl_seconds: Optional[int] = None,
        paid_retention_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        cleanup_interval_seconds: int = 300
    ):
        self._challenge_ttl_seconds = challenge_ttl_seconds
        self._paid_retention_seconds = paid_retention_seconds
        self._clock = clock
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._slots: Dict[str, _ChallengeSlot] = {}
        # transaction reference -> challenge id it paid for
        self._transactions: Dict[str, str] = {}
        self._index_lock = threading.Lock()
        self._transactions_lock = threading.Lock()
        self._last_cleanup = time.monotonic()

    @property
    def challenge_ttl(self) -> timedelta:
        """Lifetime of an unpaid challenge (lazy load from settings if not set)."""
        seconds = self._challenge_ttl_seconds
        if seconds is None:
            seconds = settings.X402_CHALLENGE_TTL_SECONDS
        return timedelta(seconds=seconds)

    @property
    def paid_retention(self) -> Optional[timedelta]:
        """Retention cap for paid challenges, None when paid challenges never expire."""
        seconds = self._paid_retention_seconds
        if seconds is None:
            seconds = settings.X402_PAID_RETENTION_SECONDS
        if seconds is None:
            return None
        return timedelta(seconds=seconds)

    def expires_at(self, challenge: Challenge) -> Optional[datetime]:
        """When the challenge stops being addressable, or None if it never does."""
        if challenge.state is ChallengeState.CREATED:
            return challenge.created_at + self.challenge_ttl

        retention = self.paid_retention
        if retention is None:
            return None
        return (challenge.paid_at or challenge.created_at) + retention

    def is_expired(self, challenge: Challenge, now: Optional[datetime] = None) -> bool:
        expires_at = self.expires_at(challenge)
        if expires_at is None:
            return False
        return (now or self._clock()) >= expires_at

    def add(self, challenge: Challenge) -> Challenge:
        self._maybe_cleanup()

        with self._index_lock:
            if challenge.id in self._slots:
                raise ValueError(f"Challenge id collision: {challenge.id}")
            self._slots[challenge.id] = _ChallengeSlot(challenge=challenge)

        logger.debug(f"Stored challenge {challenge.id}")
        return challenge

    def get(self, check_id: str) -> Challenge:
        slot = self._get_slot(check_id)
        with slot.lock:
            return self._live(slot, check_id)

    def mark_paid(self, check_id: str, transaction_ref: Optional[str] = None) -> Tuple[Challenge, bool]:
        slot = self._get_slot(check_id)

        with slot.lock:
            challenge = self._live(slot, check_id)

            if challenge.state.is_paid:
                return challenge, False

            if transaction_ref:
                self._bind_transaction(transaction_ref, check_id)

            paid = challenge.with_state(
                ChallengeState.PAID,
                paid_at=self._clock(),
                transaction_ref=transaction_ref
            )
            slot.challenge = paid

        logger.info(f"Challenge {check_id} marked paid")
        return paid, True

    def mark_redeemed(self, check_id: str) -> Challenge:
        slot = self._get_slot(check_id)

        with slot.lock:
            challenge = self._live(slot, check_id)

            if challenge.state is ChallengeState.CREATED:
                raise PaymentRequired()
            if challenge.state is ChallengeState.REDEEMED:
                raise AlreadyRedeemed()

            redeemed = challenge.with_state(ChallengeState.REDEEMED, redeemed_at=self._clock())
            slot.challenge = redeemed

        logger.info(f"Challenge {check_id} marked redeemed")
        return redeemed

    def purge_expired(self) -> int:
        now = self._clock()
        removed = 0

        with self._index_lock:
            for check_id in list(self._slots):
                slot = self._slots[check_id]
                with slot.lock:
                    if not self.is_expired(slot.challenge, now):
                        continue
                    # Transaction bindings are never released
                    del self._slots[check_id]
                    removed += 1

        if removed:
            logger.debug(f"Purged {removed} expired challenges")
        return removed

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._slots)

    def _get_slot(self, check_id: str) -> _ChallengeSlot:
        with self._index_lock:
            slot = self._slots.get(check_id)
        if slot is None:
            raise NotFound()
        return slot

    def _live(self, slot: _ChallengeSlot, check_id: str) -> Challenge:
        """Return the slot's snapshot, treating expired records as unknown."""
        if self.is_expired(slot.challenge):
            logger.info(f"Challenge {check_id} has expired")
            raise NotFound()
        return slot.challenge

    def _bind_transaction(self, transaction_ref: str, check_id: str) -> None:
        """Tie a payment proof to exactly one challenge."""
        with self._transactions_lock:
            owner = self._transactions.get(transaction_ref)
            if owner is not None and owner != check_id:
                logger.warning(
                    f"Transaction {transaction_ref} already used for challenge {owner}, "
                    f"rejected for {check_id}"
                )
                raise PaymentNotVerified("transaction already used for another challenge")
            self._transactions[transaction_ref] = check_id

    def _maybe_cleanup(self) -> None:
        """Periodically sweep expired records to bound memory growth."""
        now = time.monotonic()
        if now - self._last_cleanup < self._cleanup_interval_seconds:
            return
        self._last_cleanup = now
        self.purge_expired()


# Process-wide default store, injected into endpoints via get_challenge_store
_challenge_store: Optional[ChallengeStore] = None
_challenge_store_lock = threading.Lock()


def get_challenge_store() -> ChallengeStore:
    """
    Get the default challenge store instance.

    Used as a FastAPI dependency; tests and alternative deployments override
    it through app.dependency_overrides.
    """
    global _challenge_store

    if _challenge_store is None:
        with _challenge_store_lock:
            if _challenge_store is None:
                _challenge_store = InMemoryChallengeStore()

    return _challenge_store


def reset_challenge_store() -> None:
    """Drop the default store (useful for testing)."""
    global _challenge_store
    with _challenge_store_lock:
        _challenge_store = None
