# app/x402/issuer.py
"""
Challenge issuance for the x402 payment flow.

Issuing a challenge generates an unguessable id, snapshots the payment terms
and persists the challenge in the Created state. Only after the store has
accepted the record is the 402 payload built, so a client never receives a
checkId the store does not know.
"""
import logging
import secrets
from typing import Any, Dict, Optional, Tuple

from app.x402.models import Challenge, ChallengeState
from app.x402.pricing import PricingPolicy, get_price_quote
from app.x402.store import ChallengeStore, utcnow
from app.x402.errors import ChallengeAlreadyPaid

logger = logging.getLogger(__name__)

# x402 protocol markers carried by every payment challenge
X402_PROTOCOL = "x402"
PAYMENT_REQUIRED_STATUS = "payment_required"

# 16 random bytes = 128 bits of entropy, 22 url-safe characters
CHECK_ID_BYTES = 16

# Collisions are astronomically unlikely; a few retries guard against a broken RNG
MAX_ID_ATTEMPTS = 3


def generate_check_id() -> str:
    """Generate a cryptographically strong challenge id."""
    return secrets.token_urlsafe(CHECK_ID_BYTES)


def build_payment_required_payload(
    challenge: Challenge,
    expires_at: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the machine-readable 402 body for a challenge.

    The terms come from the challenge's stored pricing snapshot, never from
    current configuration, so re-serving a challenge yields identical terms.
    """
    pricing = challenge.pricing
    payload = {
        "status": PAYMENT_REQUIRED_STATUS,
        "protocol": X402_PROTOCOL,
        "amount": pricing.amount,
        "token": pricing.token,
        "network": pricing.network,
        "recipient": pricing.recipient,
        "checkId": challenge.id,
    }
    if expires_at:
        payload["expiresAt"] = expires_at
    return payload


def issue_challenge(
    submission: Dict[str, Any],
    store: ChallengeStore,
    pricing_policy: PricingPolicy = get_price_quote
) -> Tuple[Challenge, Dict[str, Any]]:
    """
    Create and persist a challenge for a validated submission.

    Args:
        submission: Submitted fields, already validated at the HTTP boundary
        store: Challenge store that will own the record
        pricing_policy: Callable producing the pricing snapshot

    Returns:
        Tuple of (challenge, 402 payload)

    Raises:
        ValueError: If the pricing policy is misconfigured
    """
    pricing = pricing_policy(submission)

    for attempt in range(MAX_ID_ATTEMPTS):
        challenge = Challenge(
            id=generate_check_id(),
            submission=dict(submission),
            pricing=pricing,
            created_at=utcnow(),
        )
        try:
            store.add(challenge)
            break
        except ValueError:
            logger.warning(f"Challenge id collision on attempt {attempt + 1}, regenerating")
    else:
        raise RuntimeError("Could not allocate a unique challenge id")

    logger.info(
        f"Issued challenge {challenge.id}: {pricing.amount} {pricing.token} "
        f"on {pricing.network}"
    )

    return challenge, build_payment_required_payload(challenge, _expires_at(store, challenge))


def get_payment_challenge(check_id: str, store: ChallengeStore) -> Dict[str, Any]:
    """
    Re-serve the 402 payload of an existing unpaid challenge.

    Raises:
        NotFound: If the id is unknown or expired
        ChallengeAlreadyPaid: If the challenge no longer requires payment
    """
    challenge = store.get(check_id)
    if challenge.state is not ChallengeState.CREATED:
        raise ChallengeAlreadyPaid()
    return build_payment_required_payload(challenge, _expires_at(store, challenge))


def _expires_at(store: ChallengeStore, challenge: Challenge) -> Optional[str]:
    expires_at = store.expires_at(challenge)
    return expires_at.isoformat() if expires_at else None
